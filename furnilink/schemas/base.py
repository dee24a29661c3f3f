"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Features:
    - Enables from_attributes for ORM compatibility
    - UUID → string, Decimal → float, datetime → ISO in JSON output
    """
    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={
            UUID: str,
            Decimal: float,
            datetime: lambda v: v.isoformat() if v else None,
        },
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Accepts string UUIDs from clients and ignores unknown fields.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update/patch schemas.

    All fields are optional by default for partial updates.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


def blank_rate_to_none(value):
    """
    Override rates of 0 mean "defer to the manufacturer default".

    Stored as NULL so an unset override is never mistaken for an explicit
    zero-rate.
    """
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        if Decimal(str(value)) == 0:
            return None
    except ArithmeticError:
        return value
    return value

