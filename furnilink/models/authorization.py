"""
Authorization graph models.

An authorization edge lets a downstream manufacturer or designer resell
the grantor's catalog under the edge's scope and pricing terms. Edges
form a DAG rooted at manufacturers; `parent_authorization_id` links an
edge to the edge its grantor itself received.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from furnilink.database import Base
from furnilink.db_types import UUIDType, JSONType

if TYPE_CHECKING:
    from furnilink.models.manufacturer import Manufacturer


class AuthorizationType(str, Enum):
    """Kind of grantee."""
    MANUFACTURER = "MANUFACTURER"
    DESIGNER = "DESIGNER"


class AuthorizationScope(str, Enum):
    """Portion of the grantor's catalog the edge applies to."""
    ALL = "ALL"
    CATEGORY = "CATEGORY"
    PRODUCTS = "PRODUCTS"
    MIXED = "MIXED"              # Legacy: category list OR product list


class AuthorizationStatus(str, Enum):
    """Edge status."""
    PENDING = "PENDING"          # Requested by a designer, awaiting grantor
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"      # Cooperation paused, can be resumed
    REVOKED = "REVOKED"          # Terminal, kept for historical orders
    EXPIRED = "EXPIRED"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuthorizationEdge(Base):
    """Directed resale grant from a manufacturer to a manufacturer or designer."""
    __tablename__ = "authorizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Grantor (owns the catalog)
    from_manufacturer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("manufacturers.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Grantee - exactly one is set
    to_manufacturer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("manufacturers.id", ondelete="RESTRICT"),
        nullable=True
    )
    to_designer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        comment="Designer user id (identity service)"
    )
    authorization_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="MANUFACTURER, DESIGNER"
    )

    # Scope
    scope: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AuthorizationScope.ALL.value,
        comment="ALL, CATEGORY, PRODUCTS, MIXED"
    )
    categories: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    products: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)

    # Edge-level overrides. NULL defers to the manufacturer default.
    min_discount_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        comment="Percent of list price charged; NULL = manufacturer default"
    )
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        comment="Percent commission; NULL = manufacturer default"
    )
    tier_rule_set_ids: Mapped[List[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Tier commission rule sets attached to this edge"
    )
    product_discounts: Mapped[Dict[str, str]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Per-product discount rate keyed by product id; wins over min_discount_rate"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AuthorizationStatus.ACTIVE.value,
        comment="PENDING, ACTIVE, SUSPENDED, REVOKED, EXPIRED"
    )
    is_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        comment="Grantee shows authorized products in their shop"
    )

    # Validity window
    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    valid_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="NULL = no end date"
    )

    # Hierarchy
    parent_authorization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("authorizations.id", ondelete="SET NULL"),
        nullable=True
    )
    tier_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    from_manufacturer: Mapped["Manufacturer"] = relationship(
        "Manufacturer", foreign_keys=[from_manufacturer_id]
    )
    to_manufacturer: Mapped[Optional["Manufacturer"]] = relationship(
        "Manufacturer", foreign_keys=[to_manufacturer_id]
    )
    parent: Mapped[Optional["AuthorizationEdge"]] = relationship(
        "AuthorizationEdge", remote_side=[id]
    )

    __table_args__ = (
        Index("ix_authorizations_from_status", "from_manufacturer_id", "status"),
        Index("ix_authorizations_to_manufacturer_status", "to_manufacturer_id", "status"),
        Index("ix_authorizations_to_designer_status", "to_designer_id", "status"),
        Index("ix_authorizations_status_valid_until", "status", "valid_until"),
    )

    @property
    def grantee_id(self) -> uuid.UUID:
        return self.to_manufacturer_id or self.to_designer_id

    @property
    def is_expired(self) -> bool:
        if self.status == AuthorizationStatus.EXPIRED.value:
            return True
        if not self.valid_until:
            return False
        return datetime.now(timezone.utc) > as_utc(self.valid_until)

    @property
    def is_valid(self) -> bool:
        """Active, started and not expired."""
        if self.status != AuthorizationStatus.ACTIVE.value or self.is_expired:
            return False
        return as_utc(self.valid_from) <= datetime.now(timezone.utc)

    @property
    def effective_status(self) -> str:
        """ACTIVE edges past their end date are reported as EXPIRED."""
        if self.status == AuthorizationStatus.ACTIVE.value and self.is_expired:
            return AuthorizationStatus.EXPIRED.value
        return self.status

    def __repr__(self) -> str:
        return (
            f"<AuthorizationEdge(from='{self.from_manufacturer_id}', "
            f"to='{self.grantee_id}', scope='{self.scope}', status='{self.status}')>"
        )
