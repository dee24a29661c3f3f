"""Manufacturer registry and the catalog read model it owns."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from furnilink.database import Base
from furnilink.db_types import UUIDType


class ManufacturerStatus(str, Enum):
    """Manufacturer account status."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Manufacturer(Base):
    """
    A furniture manufacturer listing products on the marketplace.

    `code` is the canonical identifier. The name fields are display
    only and are matched solely by the legacy migration helper.
    """
    __tablename__ = "manufacturers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="Canonical manufacturer code e.g. GS"
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    short_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ManufacturerStatus.ACTIVE.value,
        comment="ACTIVE, INACTIVE"
    )

    # Fallback pricing terms (percent)
    default_discount_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("100"),
        comment="Percent of list price charged to authorized resellers"
    )
    default_commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Percent returned upstream per hop"
    )

    contact_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

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

    @property
    def display_name(self) -> str:
        return self.full_name or self.name or self.short_name or self.code

    def __repr__(self) -> str:
        return f"<Manufacturer(code='{self.code}', name='{self.name}')>"


class Product(Base):
    """
    Catalog read model.

    Product CRUD belongs to the catalog service; this table only carries
    the fields pricing and dispatch look up (owner, category, list price).
    """
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    manufacturer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("manufacturers.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    category_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True
    )
    base_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    manufacturer: Mapped[Optional["Manufacturer"]] = relationship("Manufacturer")

    __table_args__ = (
        Index("ix_products_manufacturer_category", "manufacturer_id", "category_id"),
    )

    def __repr__(self) -> str:
        return f"<Product(name='{self.name}')>"
