"""
Enum Utilities for VARCHAR-based Status Fields

STORAGE STANDARD:
━━━━━━━━━━━━━━━━━
• Database: VARCHAR(30) - NOT PostgreSQL ENUM
• SQLAlchemy: String(30) with Mapped[str]
• Pydantic: Python Enum for API validation
• Case: All enum values stored in UPPERCASE

Clients and older data use lower-case names ("pending", "active");
create_uppercase_validator() lets schemas accept both.
"""

from enum import Enum
from typing import Any, Set


def normalize_to_uppercase(value: Any, valid_values: Set[str]) -> Any:
    """
    Normalize a string value to UPPERCASE if it's a valid enum value.

    Returns the original value otherwise so Pydantic raises the validation
    error.

    Examples:
        >>> normalize_to_uppercase('pending', {'PENDING', 'ACTIVE'})
        'PENDING'
        >>> normalize_to_uppercase('invalid', {'PENDING', 'ACTIVE'})
        'invalid'
    """
    if value is None:
        return value
    if isinstance(value, Enum):
        return value
    if isinstance(value, str):
        upper_v = value.strip().upper()
        if upper_v in valid_values:
            return upper_v
    return value


def create_uppercase_validator(field_name: str, valid_values: Set[str]) -> classmethod:
    """
    Create a Pydantic field_validator that normalizes values to UPPERCASE.

    Usage:
        class MySchema(BaseModel):
            status: EdgeStatus

            _normalize_status = create_uppercase_validator('status', VALID_EDGE_STATUSES)
    """
    from pydantic import field_validator

    @field_validator(field_name, mode='before')
    @classmethod
    def validate(cls, v):
        return normalize_to_uppercase(v, valid_values)

    return validate


# =============================================================================
# PRE-DEFINED VALID VALUE SETS
# =============================================================================

VALID_EDGE_STATUSES = {"PENDING", "ACTIVE", "SUSPENDED", "REVOKED", "EXPIRED"}

VALID_SUB_ORDER_STATUSES = {
    "PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "COMPLETED", "CANCELLED"
}
