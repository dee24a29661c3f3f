"""
Manufacturer sub-orders produced by dispatch.

One row per (order, manufacturer). `manufacturer_key` is the manufacturer
id as text, or "unknown" for items no manufacturer could be resolved for,
and the unique constraint on (order_id, manufacturer_key) is what makes a
second concurrent dispatch fail instead of double-creating.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from furnilink.database import Base
from furnilink.db_types import UUIDType, JSONType

if TYPE_CHECKING:
    from furnilink.models.order import Order
    from furnilink.models.manufacturer import Manufacturer


UNKNOWN_MANUFACTURER_KEY = "unknown"


class ManufacturerOrderStatus(str, Enum):
    """Manufacturer sub-order lifecycle."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ManufacturerOrder(Base):
    """Subset of an order's items fulfilled by one manufacturer."""
    __tablename__ = "manufacturer_orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    order_number: Mapped[str] = mapped_column(String(30), nullable=False)

    manufacturer_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Manufacturer id as text, or 'unknown'"
    )
    manufacturer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("manufacturers.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    manufacturer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    needs_assignment: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Items could not be attributed; waiting for manual assignment"
    )

    items: Mapped[List[dict]] = mapped_column(JSONType, nullable=False, default=list)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    # Customer snapshot
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    customer_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ManufacturerOrderStatus.PENDING.value,
        index=True,
        comment="PENDING, CONFIRMED, PROCESSING, SHIPPED, COMPLETED, CANCELLED"
    )
    tracking_no: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tracking_company: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    manufacturer_remark: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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
    order: Mapped["Order"] = relationship("Order", back_populates="manufacturer_orders")
    manufacturer: Mapped[Optional["Manufacturer"]] = relationship("Manufacturer")
    logs: Mapped[List["ManufacturerOrderLog"]] = relationship(
        "ManufacturerOrderLog",
        back_populates="manufacturer_order",
        cascade="all, delete-orphan",
        order_by="ManufacturerOrderLog.seq",
    )

    __table_args__ = (
        UniqueConstraint(
            "order_id", "manufacturer_key",
            name="uq_manufacturer_orders_order_manufacturer"
        ),
        Index("ix_manufacturer_orders_manufacturer_status", "manufacturer_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ManufacturerOrder(order='{self.order_number}', "
            f"manufacturer='{self.manufacturer_key}', status='{self.status}')>"
        )


class ManufacturerOrderLog(Base):
    """Append-only audit entry for a manufacturer order."""
    __tablename__ = "manufacturer_order_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    manufacturer_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("manufacturer_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    action: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="dispatch, confirm, status_change, assign"
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    operator: Mapped[str] = mapped_column(String(50), nullable=False, default="system")
    operator_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    manufacturer_order: Mapped["ManufacturerOrder"] = relationship(
        "ManufacturerOrder", back_populates="logs"
    )

    def __repr__(self) -> str:
        return f"<ManufacturerOrderLog(action='{self.action}', to='{self.to_status}')>"
