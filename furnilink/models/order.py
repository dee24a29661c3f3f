import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from furnilink.database import Base
from furnilink.db_types import UUIDType, JSONType

if TYPE_CHECKING:
    from furnilink.models.manufacturer import Manufacturer, Product
    from furnilink.models.manufacturer_order import ManufacturerOrder


class OrderStatus(str, Enum):
    """Customer order status."""
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class DispatchStatus(str, Enum):
    """Whether the order has been split into manufacturer orders."""
    PENDING = "PENDING"
    DISPATCHED = "DISPATCHED"


class Order(Base):
    """
    Customer-facing order.

    Line subtotals are frozen at placement time; dispatch never reprices.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="ORD-YYYYMMDD-XXXX"
    )

    # Customer snapshot
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    shipping_address: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="{name, phone, province, city, district, detail}"
    )

    # Placing actor
    placed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    placed_by_role: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Forces every item onto one manufacturer at dispatch
    owner_manufacturer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("manufacturers.id", ondelete="SET NULL"),
        nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=OrderStatus.PENDING_PAYMENT.value,
        index=True,
        comment="PENDING_PAYMENT, PAID, COMPLETED, CANCELLED"
    )

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    dispatch_status: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        default=DispatchStatus.PENDING.value,
        comment="PENDING, DISPATCHED"
    )
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
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
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.line_no",
    )
    owner_manufacturer: Mapped[Optional["Manufacturer"]] = relationship("Manufacturer")
    manufacturer_orders: Mapped[List["ManufacturerOrder"]] = relationship(
        "ManufacturerOrder",
        back_populates="order",
    )

    @property
    def customer_address(self) -> Optional[str]:
        """Single-line shipping address for manufacturer-side staff."""
        addr = self.shipping_address or {}
        parts = [addr.get(k) for k in ("province", "city", "district", "detail")]
        line = "".join(p for p in parts if p)
        return line or None

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}')>"


class OrderItem(Base):
    """Order line with pricing frozen at placement."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True
    )
    product_name: Mapped[str] = mapped_column(String(300), nullable=False)
    sku_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    sku_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    specs: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Fulfilling manufacturer declared on the line
    manufacturer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("manufacturers.id", ondelete="SET NULL"),
        nullable=True
    )
    manufacturer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    list_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Unit price charged after discount"
    )
    discount_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Frozen line total used by dispatch"
    )
    commission_breakdown: Mapped[List[dict]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Per-hop commission snapshot at placement"
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")
    product: Mapped[Optional["Product"]] = relationship("Product")

    __table_args__ = (
        Index("ix_order_items_manufacturer", "manufacturer_id"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem(product='{self.product_name}', qty={self.quantity})>"
