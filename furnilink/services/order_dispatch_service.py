"""
Order Dispatch Service

Splits a placed order into one manufacturer sub-order per resolved
manufacturer, exactly once.

The whole dispatch is a single transaction:
    1. lock the order row (FOR UPDATE where the database supports it)
    2. claim it with a conditional UPDATE ... WHERE dispatch_status != DISPATCHED
    3. insert all sub-orders; (order_id, manufacturer_key) is unique
A concurrent second dispatch loses at step 2 or 3 and the transaction
rolls back, leaving no partial sub-orders behind.
"""
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.ext.asyncio import AsyncSession

from furnilink.core.errors import (
    AlreadyDispatchedError,
    InvalidOrderStateError,
    NotFoundError,
)
from furnilink.models.manufacturer import Manufacturer
from furnilink.models.manufacturer_order import (
    ManufacturerOrder,
    ManufacturerOrderLog,
    ManufacturerOrderStatus,
    UNKNOWN_MANUFACTURER_KEY,
)
from furnilink.models.order import DispatchStatus, Order, OrderItem, OrderStatus

logger = logging.getLogger(__name__)


UNASSIGNED_NAME = "Unassigned"


@dataclass
class DispatchGroup:
    """Items bound for one manufacturer."""
    key: str
    manufacturer_id: Optional[uuid.UUID]
    items: List[OrderItem] = field(default_factory=list)
    total: Decimal = Decimal("0")


def resolve_manufacturer(order: Order, item: OrderItem) -> Tuple[str, Optional[uuid.UUID]]:
    """
    Attribution for one line: order owner override, then the line's
    manufacturer, then the product's manufacturer, else "unknown".
    """
    manufacturer_id = (
        order.owner_manufacturer_id
        or item.manufacturer_id
        or (item.product.manufacturer_id if item.product is not None else None)
    )
    if manufacturer_id is None:
        return UNKNOWN_MANUFACTURER_KEY, None
    return str(manufacturer_id), manufacturer_id


def group_items(order: Order) -> "OrderedDict[str, DispatchGroup]":
    """
    Group lines by resolved manufacturer, in line order.

    Totals add up the subtotals frozen at placement; price x quantity is
    never recomputed here.
    """
    groups: "OrderedDict[str, DispatchGroup]" = OrderedDict()
    for item in order.items:
        key, manufacturer_id = resolve_manufacturer(order, item)
        group = groups.get(key)
        if group is None:
            group = groups[key] = DispatchGroup(key=key, manufacturer_id=manufacturer_id)
        group.items.append(item)
        group.total += item.subtotal or Decimal("0")
    return groups


def snapshot_item(item: OrderItem) -> dict:
    """JSON-safe copy of a line stored on the sub-order."""
    return {
        "order_item_id": str(item.id),
        "line_no": item.line_no,
        "product_id": str(item.product_id) if item.product_id else None,
        "product_name": item.product_name,
        "sku_id": item.sku_id,
        "sku_name": item.sku_name,
        "specs": item.specs,
        "image": item.image,
        "manufacturer_id": str(item.manufacturer_id) if item.manufacturer_id else None,
        "quantity": item.quantity,
        "list_price": str(item.list_price) if item.list_price is not None else None,
        "price": str(item.price),
        "subtotal": str(item.subtotal),
    }


class OrderDispatchService:
    """Service for splitting orders into manufacturer orders"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _lock_order(self, order_id: uuid.UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .where(Order.id == order_id)
            .with_for_update(of=Order)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    async def _manufacturer_names(self, ids: List[uuid.UUID]) -> Dict[uuid.UUID, str]:
        if not ids:
            return {}
        result = await self.db.execute(select(Manufacturer).where(Manufacturer.id.in_(ids)))
        return {m.id: m.display_name for m in result.scalars().all()}

    async def _dispatch(
        self,
        order_id: uuid.UUID,
        operator: str,
        operator_id: Optional[uuid.UUID],
    ) -> List[ManufacturerOrder]:
        order = await self._lock_order(order_id)

        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidOrderStateError(
                f"Order {order.order_number} is cancelled and cannot be dispatched",
                {"status": order.status},
            )
        if order.dispatch_status == DispatchStatus.DISPATCHED.value:
            raise AlreadyDispatchedError(
                f"Order {order.order_number} has already been dispatched",
                {"order_id": str(order.id)},
            )
        existing = await self.db.execute(
            select(ManufacturerOrder.id).where(ManufacturerOrder.order_id == order.id).limit(1)
        )
        if existing.scalar_one_or_none():
            raise AlreadyDispatchedError(
                f"Manufacturer orders already exist for order {order.order_number}",
                {"order_id": str(order.id)},
            )
        if not order.items:
            raise InvalidOrderStateError(f"Order {order.order_number} has no items")

        groups = group_items(order)
        names = await self._manufacturer_names(
            [g.manufacturer_id for g in groups.values() if g.manufacturer_id]
        )

        now = datetime.now(timezone.utc)
        claimed = await self.db.execute(
            update(Order)
            .where(
                Order.id == order.id,
                or_(
                    Order.dispatch_status.is_(None),
                    Order.dispatch_status != DispatchStatus.DISPATCHED.value,
                ),
            )
            .values(dispatch_status=DispatchStatus.DISPATCHED.value, dispatched_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise AlreadyDispatchedError(
                f"Order {order.order_number} was dispatched concurrently",
                {"order_id": str(order.id)},
            )
        set_committed_value(order, "dispatch_status", DispatchStatus.DISPATCHED.value)
        set_committed_value(order, "dispatched_at", now)

        created = []
        for group in groups.values():
            unassigned = group.key == UNKNOWN_MANUFACTURER_KEY
            if unassigned:
                logger.warning(
                    f"Order {order.order_number}: {len(group.items)} item(s) have no resolvable "
                    f"manufacturer; dispatched to the '{UNKNOWN_MANUFACTURER_KEY}' bucket for manual assignment"
                )
                content = "Order dispatched; items await manufacturer assignment"
            else:
                content = "Order dispatched to manufacturer"

            manufacturer_order = ManufacturerOrder(
                order_id=order.id,
                order_number=order.order_number,
                manufacturer_key=group.key,
                manufacturer_id=group.manufacturer_id,
                manufacturer_name=(
                    UNASSIGNED_NAME if unassigned else names.get(group.manufacturer_id)
                ),
                needs_assignment=unassigned,
                items=[snapshot_item(item) for item in group.items],
                total_amount=group.total,
                customer_name=order.customer_name,
                customer_phone=order.customer_phone,
                customer_address=order.customer_address,
                status=ManufacturerOrderStatus.PENDING.value,
                logs=[
                    ManufacturerOrderLog(
                        seq=1,
                        action="dispatch",
                        content=content,
                        to_status=ManufacturerOrderStatus.PENDING.value,
                        operator=operator,
                        operator_id=operator_id,
                    )
                ],
            )
            self.db.add(manufacturer_order)
            created.append(manufacturer_order)

        await self.db.flush()
        return created

    async def dispatch_order(
        self,
        order_id: uuid.UUID,
        operator: str = "system",
        operator_id: Optional[uuid.UUID] = None,
    ) -> List[ManufacturerOrder]:
        """
        Split an order into manufacturer orders. One shot: a second call
        raises AlreadyDispatchedError and changes nothing.
        """
        try:
            created = await self._dispatch(order_id, operator, operator_id)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Dispatch conflict for order {order_id}: {e.orig}")
            raise AlreadyDispatchedError(
                "Order was dispatched concurrently", {"order_id": str(order_id)}
            ) from e
        except AlreadyDispatchedError:
            await self.db.rollback()
            logger.warning(f"Rejected repeated dispatch of order {order_id}")
            raise
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Order {created[0].order_number} dispatched into {len(created)} manufacturer order(s): "
            f"{', '.join(mo.manufacturer_key for mo in created)}"
        )
        return created

    async def list_dispatch_records(self, order_id: uuid.UUID) -> List[ManufacturerOrder]:
        """Manufacturer orders produced by one order's dispatch."""
        result = await self.db.execute(
            select(ManufacturerOrder)
            .options(selectinload(ManufacturerOrder.logs))
            .where(ManufacturerOrder.order_id == order_id)
            .order_by(ManufacturerOrder.created_at, ManufacturerOrder.manufacturer_key)
        )
        return list(result.scalars().all())
