"""
Order Service

Checkout-side order placement. Each catalog line is priced through the
commission resolver and the result is frozen onto the line, so later
edits to edges, rule sets or manufacturer defaults never reprice a
placed order.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from furnilink.core.errors import InvalidOrderStateError, NotFoundError, PermissionDeniedError
from furnilink.core.permissions import Actor
from furnilink.models.manufacturer import Manufacturer, Product
from furnilink.models.order import DispatchStatus, Order, OrderItem, OrderStatus
from furnilink.schemas.order import OrderCreate, OrderItemCreate
from furnilink.services.commission_resolver import CommissionResolver, money, to_decimal
from furnilink.services.scope_evaluator import ProductRef

logger = logging.getLogger(__name__)


class OrderService:
    """Service for order placement and cancellation"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.resolver = CommissionResolver(db)

    async def generate_order_number(self) -> str:
        """Generate unique order number: ORD-YYYYMMDD-XXXX"""
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        prefix = f"ORD-{today}-"

        stmt = select(func.count(Order.id)).where(
            Order.order_number.like(f"{prefix}%")
        )
        count = (await self.db.execute(stmt)).scalar() or 0

        return f"{prefix}{(count + 1):04d}"

    async def get_order(self, order_id: uuid.UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    async def _price_line(
        self,
        line_no: int,
        item_data: OrderItemCreate,
        placed_by: Optional[Actor],
        manufacturers: Dict[uuid.UUID, Manufacturer],
    ) -> OrderItem:
        quantity = item_data.quantity

        if item_data.product_id is None:
            # Custom line: price supplied by the caller, no commission
            price = money(to_decimal(item_data.price))
            manufacturer_id = item_data.manufacturer_id
            return OrderItem(
                line_no=line_no,
                product_name=item_data.product_name,
                sku_id=item_data.sku_id,
                sku_name=item_data.sku_name,
                specs=item_data.specs,
                image=item_data.image,
                manufacturer_id=manufacturer_id,
                manufacturer_name=await self._manufacturer_name(manufacturer_id, manufacturers),
                quantity=quantity,
                list_price=price,
                price=price,
                discount_rate=None,
                subtotal=money(price * quantity),
                commission_breakdown=[],
            )

        product = await self.db.get(Product, item_data.product_id)
        if not product:
            raise NotFoundError("Product", item_data.product_id)

        list_price = money(to_decimal(product.base_price))
        # Admins and anonymous checkouts buy at list price
        actor_node = placed_by.resolution_id if placed_by and not placed_by.is_admin else None
        catalog_owner = product.manufacturer_id

        if catalog_owner is None or actor_node is None or actor_node == catalog_owner:
            # Direct sale by (or from) the owning manufacturer
            unit_price = list_price
            subtotal = money(list_price * quantity)
            discount_rate = None
            breakdown = []
        else:
            resolution = await self.resolver.resolve_for_actor(
                catalog_owner, actor_node, ProductRef.from_product(product)
            )
            resolution.apply_price(list_price, quantity)
            unit_price = resolution.unit_price
            subtotal = resolution.subtotal
            discount_rate = resolution.discount_rate
            breakdown = [hop.snapshot() for hop in resolution.commission_breakdown]

        manufacturer_id = item_data.manufacturer_id or catalog_owner
        return OrderItem(
            line_no=line_no,
            product_id=product.id,
            product_name=item_data.product_name or product.name,
            sku_id=item_data.sku_id,
            sku_name=item_data.sku_name,
            specs=item_data.specs,
            image=item_data.image,
            manufacturer_id=manufacturer_id,
            manufacturer_name=await self._manufacturer_name(manufacturer_id, manufacturers),
            quantity=quantity,
            list_price=list_price,
            price=unit_price,
            discount_rate=discount_rate,
            subtotal=subtotal,
            commission_breakdown=breakdown,
        )

    async def _manufacturer_name(
        self,
        manufacturer_id: Optional[uuid.UUID],
        cache: Dict[uuid.UUID, Manufacturer],
    ) -> Optional[str]:
        if manufacturer_id is None:
            return None
        if manufacturer_id not in cache:
            manufacturer = await self.db.get(Manufacturer, manufacturer_id)
            if not manufacturer:
                raise NotFoundError("Manufacturer", manufacturer_id)
            cache[manufacturer_id] = manufacturer
        return cache[manufacturer_id].display_name

    async def place_order(self, data: OrderCreate, placed_by: Optional[Actor] = None) -> Order:
        """
        Create an order with every line priced and frozen.

        Resolution failures propagate; checkout never falls back to list
        price when the authorization chain is broken. The owning
        manufacturer override is the placing account's own manufacturer;
        only admins may set it to another one.
        """
        if data.owner_manufacturer_id and placed_by and not placed_by.is_admin:
            if data.owner_manufacturer_id != placed_by.manufacturer_id:
                raise PermissionDeniedError(
                    "owner_manufacturer_id must be the placing account's own manufacturer",
                    {"owner_manufacturer_id": str(data.owner_manufacturer_id)},
                )

        await self.resolver.begin_snapshot()
        order_number = await self.generate_order_number()

        manufacturers: Dict[uuid.UUID, Manufacturer] = {}
        if data.owner_manufacturer_id:
            await self._manufacturer_name(data.owner_manufacturer_id, manufacturers)

        items = []
        for line_no, item_data in enumerate(data.items, start=1):
            items.append(await self._price_line(line_no, item_data, placed_by, manufacturers))

        subtotal = sum((item.subtotal for item in items), Decimal("0"))
        order = Order(
            order_number=order_number,
            customer_id=data.customer_id,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            shipping_address=data.shipping_address.model_dump() if data.shipping_address else None,
            placed_by=placed_by.id if placed_by else None,
            placed_by_role=placed_by.role if placed_by else None,
            owner_manufacturer_id=data.owner_manufacturer_id,
            status=OrderStatus.PENDING_PAYMENT.value,
            subtotal=subtotal,
            total_amount=subtotal,
            dispatch_status=DispatchStatus.PENDING.value,
            notes=data.notes,
            items=items,
        )
        self.db.add(order)
        await self.db.commit()

        logger.info(
            f"Order {order.order_number} placed: {len(items)} line(s), total {order.total_amount}"
        )
        return await self.get_order(order.id)

    async def cancel_order(self, order_id: uuid.UUID, reason: Optional[str] = None) -> Order:
        """Cancel an order that has not been dispatched yet."""
        order = await self.get_order(order_id)
        if order.dispatch_status == DispatchStatus.DISPATCHED.value:
            raise InvalidOrderStateError(
                f"Order {order.order_number} has been dispatched and cannot be cancelled",
                {"dispatch_status": order.dispatch_status},
            )
        if order.status in (OrderStatus.CANCELLED.value, OrderStatus.COMPLETED.value):
            raise InvalidOrderStateError(
                f"Order {order.order_number} is already {order.status.lower()}",
                {"status": order.status},
            )

        order.status = OrderStatus.CANCELLED.value
        order.cancelled_at = datetime.now(timezone.utc)
        if reason:
            order.notes = f"{order.notes}\n{reason}" if order.notes else reason
        await self.db.commit()

        logger.info(f"Order {order.order_number} cancelled")
        return await self.get_order(order.id)
