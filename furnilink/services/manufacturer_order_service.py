"""
Manufacturer Order Service

Manufacturer-side handling of dispatched sub-orders:
- Confirmation and status progression (via the state machine)
- Manual assignment of the "unknown" bucket
- Listing, per-status stats and settlement reconciliation
"""
import logging
import uuid
from collections import OrderedDict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from furnilink.config import settings
from furnilink.core.errors import (
    AmbiguousAttributionError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from furnilink.models.authorization import as_utc
from furnilink.models.manufacturer import Manufacturer
from furnilink.models.manufacturer_order import ManufacturerOrder, ManufacturerOrderStatus
from furnilink.schemas.manufacturer_order import ManufacturerOrderStatusUpdate
from furnilink.services.manufacturer_order_state_machine import (
    SubOrderStatus,
    append_log,
    apply_transition,
    can_confirm,
    get_allowed_transitions,
)

logger = logging.getLogger(__name__)


class ManufacturerOrderService:
    """Service for manufacturer sub-orders"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_manufacturer_order(self, manufacturer_order_id: uuid.UUID) -> ManufacturerOrder:
        result = await self.db.execute(
            select(ManufacturerOrder)
            .options(selectinload(ManufacturerOrder.logs))
            .where(ManufacturerOrder.id == manufacturer_order_id)
        )
        manufacturer_order = result.scalar_one_or_none()
        if not manufacturer_order:
            raise NotFoundError("ManufacturerOrder", manufacturer_order_id)
        return manufacturer_order

    async def _reload(self, manufacturer_order_id: uuid.UUID) -> ManufacturerOrder:
        result = await self.db.execute(
            select(ManufacturerOrder)
            .options(selectinload(ManufacturerOrder.logs))
            .where(ManufacturerOrder.id == manufacturer_order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def list_manufacturer_orders(
        self,
        status: Optional[str] = None,
        manufacturer_id: Optional[uuid.UUID] = None,
        keyword: Optional[str] = None,
        needs_assignment: Optional[bool] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[ManufacturerOrder], int]:
        query = select(ManufacturerOrder).options(selectinload(ManufacturerOrder.logs))

        if status:
            query = query.where(ManufacturerOrder.status == status.upper())
        if manufacturer_id:
            query = query.where(ManufacturerOrder.manufacturer_id == manufacturer_id)
        if needs_assignment is not None:
            query = query.where(ManufacturerOrder.needs_assignment.is_(needs_assignment))
        if keyword:
            pattern = f"%{keyword.strip()}%"
            query = query.where(
                or_(
                    ManufacturerOrder.order_number.ilike(pattern),
                    ManufacturerOrder.customer_name.ilike(pattern),
                    ManufacturerOrder.customer_phone.ilike(pattern),
                )
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(ManufacturerOrder.created_at.desc())
        query = query.offset((page - 1) * size).limit(size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_stats(self, manufacturer_id: Optional[uuid.UUID] = None) -> dict:
        """Sub-order count per lifecycle state."""
        query = select(ManufacturerOrder.status, func.count(ManufacturerOrder.id))
        if manufacturer_id:
            query = query.where(ManufacturerOrder.manufacturer_id == manufacturer_id)
        query = query.group_by(ManufacturerOrder.status)

        stats = {s.value.lower(): 0 for s in ManufacturerOrderStatus}
        for status, count in (await self.db.execute(query)).all():
            stats[status.lower()] = count
        stats["total"] = sum(stats.values())
        return stats

    @staticmethod
    def _require_assigned(manufacturer_order: ManufacturerOrder, target: str) -> None:
        if manufacturer_order.needs_assignment:
            raise AmbiguousAttributionError(
                f"Manufacturer order {manufacturer_order.id} has no manufacturer yet; "
                f"assign one before moving it to {target}",
                {"manufacturer_order_id": str(manufacturer_order.id)},
            )

    async def confirm(
        self,
        manufacturer_order_id: uuid.UUID,
        remark: Optional[str] = None,
        operator: str = "manufacturer",
        operator_id: Optional[uuid.UUID] = None,
    ) -> ManufacturerOrder:
        """Manufacturer accepts a pending sub-order."""
        manufacturer_order = await self.get_manufacturer_order(manufacturer_order_id)
        self._require_assigned(manufacturer_order, SubOrderStatus.CONFIRMED)

        if not can_confirm(manufacturer_order.status):
            raise InvalidTransitionError(
                manufacturer_order.status,
                SubOrderStatus.CONFIRMED,
                get_allowed_transitions(manufacturer_order.status),
            )

        apply_transition(
            manufacturer_order,
            SubOrderStatus.CONFIRMED,
            action="confirm",
            operator=operator,
            operator_id=operator_id,
            remark=remark,
        )
        await self.db.commit()

        logger.info(f"Manufacturer order {manufacturer_order.id} confirmed")
        return await self._reload(manufacturer_order.id)

    async def update_status(
        self,
        manufacturer_order_id: uuid.UUID,
        data: ManufacturerOrderStatusUpdate,
        operator: str = "manufacturer",
        operator_id: Optional[uuid.UUID] = None,
    ) -> ManufacturerOrder:
        manufacturer_order = await self.get_manufacturer_order(manufacturer_order_id)
        target = data.status.value if hasattr(data.status, "value") else str(data.status)
        if target != SubOrderStatus.CANCELLED:
            self._require_assigned(manufacturer_order, target)

        old_status = manufacturer_order.status
        apply_transition(
            manufacturer_order,
            target,
            operator=operator,
            operator_id=operator_id,
            remark=data.remark,
            tracking_no=data.tracking_no,
            tracking_company=data.tracking_company,
        )
        await self.db.commit()

        logger.info(f"Manufacturer order {manufacturer_order.id}: {old_status} -> {target}")
        return await self._reload(manufacturer_order.id)

    async def assign_manufacturer(
        self,
        manufacturer_order_id: uuid.UUID,
        manufacturer_id: uuid.UUID,
        operator: str = "admin",
        operator_id: Optional[uuid.UUID] = None,
    ) -> ManufacturerOrder:
        """
        Attach the "unknown" bucket to a manufacturer.

        If that manufacturer already has a pending sub-order for the same
        order, the items are merged into it and the bucket is cancelled;
        otherwise the bucket itself is re-keyed.
        """
        bucket = await self.get_manufacturer_order(manufacturer_order_id)
        if not bucket.needs_assignment:
            raise ConflictError(
                f"Manufacturer order {bucket.id} is already assigned",
                {"manufacturer_id": str(bucket.manufacturer_id) if bucket.manufacturer_id else None},
            )
        if bucket.status != SubOrderStatus.PENDING:
            raise InvalidTransitionError(bucket.status, SubOrderStatus.PENDING, [])

        manufacturer = await self.db.get(Manufacturer, manufacturer_id)
        if not manufacturer:
            raise NotFoundError("Manufacturer", manufacturer_id)

        result = await self.db.execute(
            select(ManufacturerOrder)
            .options(selectinload(ManufacturerOrder.logs))
            .where(
                ManufacturerOrder.order_id == bucket.order_id,
                ManufacturerOrder.manufacturer_key == str(manufacturer_id),
            )
        )
        target = result.scalar_one_or_none()

        try:
            if target is not None:
                if target.status != SubOrderStatus.PENDING:
                    raise ConflictError(
                        f"Manufacturer order {target.id} is already {target.status.lower()}; "
                        f"items cannot be merged into it",
                        {"target_id": str(target.id), "status": target.status},
                    )
                target.items = list(target.items or []) + list(bucket.items or [])
                target.total_amount = (target.total_amount or Decimal("0")) + bucket.total_amount
                append_log(
                    target,
                    action="assign",
                    content=f"{len(bucket.items)} unassigned item(s) merged in",
                    operator=operator,
                    operator_id=operator_id,
                )
                apply_transition(
                    bucket,
                    SubOrderStatus.CANCELLED,
                    action="assign",
                    operator=operator,
                    operator_id=operator_id,
                )
                bucket.logs[-1].content = (
                    f"Items merged into manufacturer order for {manufacturer.display_name}; "
                    f"{bucket.logs[-1].content}"
                )
                bucket.needs_assignment = False
                result_id = target.id
            else:
                bucket.manufacturer_key = str(manufacturer_id)
                bucket.manufacturer_id = manufacturer_id
                bucket.manufacturer_name = manufacturer.display_name
                bucket.needs_assignment = False
                append_log(
                    bucket,
                    action="assign",
                    content=f"Assigned to manufacturer {manufacturer.display_name}",
                    operator=operator,
                    operator_id=operator_id,
                )
                result_id = bucket.id
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(
                "Manufacturer order for this manufacturer was created concurrently"
            ) from e

        logger.info(
            f"Unassigned items of order {bucket.order_number} assigned to {manufacturer.code}"
        )
        return await self._reload(result_id)

    async def reconciliation(
        self,
        manufacturer_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        """
        Completed sub-orders per completion day, with the settlement owed
        at the manufacturer's default commission rate.
        """
        manufacturer = await self.db.get(Manufacturer, manufacturer_id)
        if not manufacturer:
            raise NotFoundError("Manufacturer", manufacturer_id)

        end_date = end_date or datetime.now(timezone.utc).date()
        start_date = start_date or (end_date - timedelta(days=settings.RECONCILIATION_DEFAULT_DAYS))
        window_start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
        window_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)

        result = await self.db.execute(
            select(ManufacturerOrder).where(
                ManufacturerOrder.manufacturer_id == manufacturer_id,
                ManufacturerOrder.status == SubOrderStatus.COMPLETED,
                ManufacturerOrder.completed_at >= window_start,
                ManufacturerOrder.completed_at < window_end,
            )
        )
        rate = Decimal(str(manufacturer.default_commission_rate or 0))

        days: "OrderedDict[date, dict]" = OrderedDict()
        for manufacturer_order in sorted(result.scalars().all(), key=lambda m: as_utc(m.completed_at)):
            day = as_utc(manufacturer_order.completed_at).date()
            bucket = days.setdefault(
                day, {"date": day, "order_count": 0, "total_amount": Decimal("0")}
            )
            bucket["order_count"] += 1
            bucket["total_amount"] += Decimal(str(manufacturer_order.total_amount or 0))

        for bucket in days.values():
            bucket["settlement_amount"] = settlement_amount(bucket["total_amount"], rate)

        rows = list(days.values())
        return {
            "manufacturer_id": manufacturer_id,
            "start_date": start_date,
            "end_date": end_date,
            "commission_rate": rate,
            "days": rows,
            "order_count": sum(r["order_count"] for r in rows),
            "total_amount": sum((r["total_amount"] for r in rows), Decimal("0")),
            "settlement_amount": sum((r["settlement_amount"] for r in rows), Decimal("0")),
        }


def settlement_amount(total: Decimal, rate: Decimal) -> Decimal:
    """round(total x rate / 100) to whole currency units, halves up."""
    return (total * rate / Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
