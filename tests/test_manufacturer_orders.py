"""Manufacturer sub-order lifecycle, assignment, stats and reconciliation."""

from decimal import Decimal

import pytest

from furnilink.core.errors import (
    AmbiguousAttributionError,
    ConflictError,
    InvalidTransitionError,
)
from furnilink.models.manufacturer_order import ManufacturerOrder, UNKNOWN_MANUFACTURER_KEY
from furnilink.schemas.manufacturer_order import ManufacturerOrderStatusUpdate
from furnilink.services.manufacturer_order_service import (
    ManufacturerOrderService,
    settlement_amount,
)
from furnilink.services.manufacturer_order_state_machine import (
    SubOrderStatus,
    apply_transition,
    can_transition,
    get_allowed_transitions,
    is_terminal,
    validate_transition,
)
from furnilink.services.order_dispatch_service import OrderDispatchService
from tests.conftest import line


def status(value: str, **kwargs) -> ManufacturerOrderStatusUpdate:
    return ManufacturerOrderStatusUpdate(status=value, **kwargs)


async def dispatch(db_session, order):
    created = await OrderDispatchService(db_session).dispatch_order(order.id)
    return {mo.manufacturer_key: mo for mo in created}


# ============================================================================
# STATE MACHINE
# ============================================================================


class TestStateMachine:

    def test_happy_path_is_linear(self):
        path = [
            SubOrderStatus.PENDING,
            SubOrderStatus.CONFIRMED,
            SubOrderStatus.PROCESSING,
            SubOrderStatus.SHIPPED,
            SubOrderStatus.COMPLETED,
        ]
        for current, nxt in zip(path, path[1:]):
            assert can_transition(current, nxt)
            assert get_allowed_transitions(current)[0] == nxt

    @pytest.mark.parametrize("current", [SubOrderStatus.PENDING, SubOrderStatus.CONFIRMED])
    def test_cancel_only_before_production(self, current):
        assert can_transition(current, SubOrderStatus.CANCELLED)

    @pytest.mark.parametrize(
        "current,target",
        [
            (SubOrderStatus.CONFIRMED, SubOrderStatus.CONFIRMED),
            (SubOrderStatus.CONFIRMED, SubOrderStatus.SHIPPED),
            (SubOrderStatus.PENDING, SubOrderStatus.PROCESSING),
            (SubOrderStatus.PROCESSING, SubOrderStatus.CANCELLED),
            (SubOrderStatus.SHIPPED, SubOrderStatus.PROCESSING),
            (SubOrderStatus.COMPLETED, SubOrderStatus.CANCELLED),
            (SubOrderStatus.CANCELLED, SubOrderStatus.PENDING),
        ],
    )
    def test_invalid_transitions(self, current, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(current, target)
        assert exc_info.value.details["current_status"] == current

    def test_terminal_states(self):
        assert is_terminal(SubOrderStatus.COMPLETED)
        assert is_terminal(SubOrderStatus.CANCELLED)
        assert not is_terminal(SubOrderStatus.SHIPPED)

    def test_transition_logs_in_local_terms(self):
        mo = ManufacturerOrder(status=SubOrderStatus.CONFIRMED, logs=[])

        log = apply_transition(mo, SubOrderStatus.PROCESSING, operator="manufacturer")

        assert mo.status == SubOrderStatus.PROCESSING
        assert log.seq == 1
        assert log.content == "Status changed from Confirmed to In production"
        assert log.from_status == SubOrderStatus.CONFIRMED
        assert log.to_status == SubOrderStatus.PROCESSING

    def test_failed_transition_leaves_order_untouched(self):
        mo = ManufacturerOrder(status=SubOrderStatus.CONFIRMED, logs=[])

        with pytest.raises(InvalidTransitionError):
            apply_transition(mo, SubOrderStatus.SHIPPED, tracking_no="SF100")

        assert mo.status == SubOrderStatus.CONFIRMED
        assert mo.tracking_no is None
        assert mo.logs == []


# ============================================================================
# SERVICE LIFECYCLE
# ============================================================================


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_confirm_then_confirm_again(self, db_session, seed):
        maker = await seed.manufacturer("CF")
        order = await seed.order(line(manufacturer_id=maker.id))
        mo = (await dispatch(db_session, order))[str(maker.id)]
        service = ManufacturerOrderService(db_session)

        confirmed = await service.confirm(mo.id, remark="Delivery in 3 weeks")
        assert confirmed.status == SubOrderStatus.CONFIRMED
        assert confirmed.confirmed_at is not None
        assert confirmed.manufacturer_remark == "Delivery in 3 weeks"
        assert [log.action for log in confirmed.logs] == ["dispatch", "confirm"]

        with pytest.raises(InvalidTransitionError):
            await service.confirm(mo.id)

        reloaded = await service.get_manufacturer_order(mo.id)
        assert len(reloaded.logs) == 2

    @pytest.mark.asyncio
    async def test_full_lifecycle_records_tracking(self, db_session, seed):
        maker = await seed.manufacturer("LC")
        order = await seed.order(line(manufacturer_id=maker.id))
        mo = (await dispatch(db_session, order))[str(maker.id)]
        service = ManufacturerOrderService(db_session)

        await service.confirm(mo.id)
        processing = await service.update_status(mo.id, status("processing"))
        assert processing.status == SubOrderStatus.PROCESSING
        assert "In production" in processing.logs[-1].content

        shipped = await service.update_status(
            mo.id, status("SHIPPED", tracking_no="SF1234567", tracking_company="SF Express")
        )
        assert shipped.tracking_no == "SF1234567"
        assert shipped.tracking_company == "SF Express"
        assert shipped.shipped_at is not None
        assert "SF1234567" in shipped.logs[-1].content

        completed = await service.update_status(mo.id, status("COMPLETED"))
        assert completed.completed_at is not None
        assert [log.seq for log in completed.logs] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_cannot_skip_to_shipped(self, db_session, seed):
        maker = await seed.manufacturer("SK")
        order = await seed.order(line(manufacturer_id=maker.id))
        mo = (await dispatch(db_session, order))[str(maker.id)]
        service = ManufacturerOrderService(db_session)
        await service.confirm(mo.id)

        with pytest.raises(InvalidTransitionError):
            await service.update_status(mo.id, status("SHIPPED", tracking_no="X1"))

    @pytest.mark.asyncio
    async def test_decline_pending(self, db_session, seed):
        maker = await seed.manufacturer("DL")
        order = await seed.order(line(manufacturer_id=maker.id))
        mo = (await dispatch(db_session, order))[str(maker.id)]

        cancelled = await ManufacturerOrderService(db_session).update_status(
            mo.id, status("CANCELLED", remark="Out of stock")
        )
        assert cancelled.status == SubOrderStatus.CANCELLED
        assert cancelled.cancelled_at is not None

    @pytest.mark.asyncio
    async def test_unassigned_bucket_cannot_progress(self, db_session, seed):
        order = await seed.order(line())
        bucket = (await dispatch(db_session, order))[UNKNOWN_MANUFACTURER_KEY]
        service = ManufacturerOrderService(db_session)

        with pytest.raises(AmbiguousAttributionError):
            await service.confirm(bucket.id)

        cancelled = await service.update_status(bucket.id, status("CANCELLED"))
        assert cancelled.status == SubOrderStatus.CANCELLED


# ============================================================================
# MANUAL ASSIGNMENT
# ============================================================================


class TestAssignment:

    @pytest.mark.asyncio
    async def test_merge_into_existing_sub_order(self, db_session, seed):
        maker = await seed.manufacturer("MG")
        sofa = await seed.product(maker, price="1000")
        order = await seed.order(line(sofa), line(product_name="Custom shelf", price=Decimal("300")))
        by_key = await dispatch(db_session, order)
        bucket = by_key[UNKNOWN_MANUFACTURER_KEY]
        service = ManufacturerOrderService(db_session)

        merged = await service.assign_manufacturer(bucket.id, maker.id)

        assert merged.id == by_key[str(maker.id)].id
        assert [i["product_name"] for i in merged.items] == ["Three-seat sofa", "Custom shelf"]
        assert merged.total_amount == Decimal("1300.00")
        assert merged.logs[-1].action == "assign"

        old_bucket = await service.get_manufacturer_order(bucket.id)
        assert old_bucket.status == SubOrderStatus.CANCELLED
        assert old_bucket.needs_assignment is False

    @pytest.mark.asyncio
    async def test_rekey_bucket(self, db_session, seed):
        maker = await seed.manufacturer("RK")
        order = await seed.order(line())
        bucket = (await dispatch(db_session, order))[UNKNOWN_MANUFACTURER_KEY]
        service = ManufacturerOrderService(db_session)

        assigned = await service.assign_manufacturer(bucket.id, maker.id)

        assert assigned.id == bucket.id
        assert assigned.manufacturer_key == str(maker.id)
        assert assigned.manufacturer_id == maker.id
        assert assigned.manufacturer_name == "RK Furniture"
        assert not assigned.needs_assignment

        confirmed = await service.confirm(assigned.id)
        assert confirmed.status == SubOrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_assigned_sub_order_cannot_be_reassigned(self, db_session, seed):
        maker = await seed.manufacturer("RA")
        other = await seed.manufacturer("RB")
        order = await seed.order(line(manufacturer_id=maker.id))
        mo = (await dispatch(db_session, order))[str(maker.id)]

        with pytest.raises(ConflictError):
            await ManufacturerOrderService(db_session).assign_manufacturer(mo.id, other.id)

    @pytest.mark.asyncio
    async def test_merge_into_confirmed_sub_order_rejected(self, db_session, seed):
        maker = await seed.manufacturer("MC")
        order = await seed.order(line(manufacturer_id=maker.id), line())
        by_key = await dispatch(db_session, order)
        service = ManufacturerOrderService(db_session)
        await service.confirm(by_key[str(maker.id)].id)

        with pytest.raises(ConflictError):
            await service.assign_manufacturer(by_key[UNKNOWN_MANUFACTURER_KEY].id, maker.id)


# ============================================================================
# LISTING, STATS AND RECONCILIATION
# ============================================================================


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_filters(self, db_session, seed):
        maker_a = await seed.manufacturer("LA")
        maker_b = await seed.manufacturer("LB")
        first = await seed.order(line(manufacturer_id=maker_a.id), line(manufacturer_id=maker_b.id))
        second = await seed.order(line(manufacturer_id=maker_a.id), line())
        await dispatch(db_session, first)
        await dispatch(db_session, second)
        service = ManufacturerOrderService(db_session)

        items, total = await service.list_manufacturer_orders(manufacturer_id=maker_a.id)
        assert total == 2
        assert all(mo.manufacturer_id == maker_a.id for mo in items)

        unassigned, total = await service.list_manufacturer_orders(needs_assignment=True)
        assert total == 1
        assert unassigned[0].order_number == second.order_number

        by_number, total = await service.list_manufacturer_orders(keyword=first.order_number)
        assert total == 2

        page, total = await service.list_manufacturer_orders(page=2, size=3)
        assert total == 4
        assert len(page) == 1

    @pytest.mark.asyncio
    async def test_stats(self, db_session, seed):
        maker_a = await seed.manufacturer("SA")
        maker_b = await seed.manufacturer("SB")
        order = await seed.order(line(manufacturer_id=maker_a.id), line(manufacturer_id=maker_b.id))
        by_key = await dispatch(db_session, order)
        service = ManufacturerOrderService(db_session)
        await service.confirm(by_key[str(maker_a.id)].id)

        stats = await service.get_stats()
        assert stats["total"] == 2
        assert stats["pending"] == 1
        assert stats["confirmed"] == 1

        scoped = await service.get_stats(maker_b.id)
        assert scoped["total"] == 1
        assert scoped["pending"] == 1
        assert scoped["confirmed"] == 0

    @pytest.mark.asyncio
    async def test_reconciliation_rounds_settlement_half_up(self, db_session, seed):
        maker = await seed.manufacturer("RC", commission="10")
        order = await seed.order(line(manufacturer_id=maker.id, price=Decimal("25")))
        pending = await seed.order(line(manufacturer_id=maker.id, price=Decimal("999")))
        mo = (await dispatch(db_session, order))[str(maker.id)]
        await dispatch(db_session, pending)
        service = ManufacturerOrderService(db_session)
        await service.confirm(mo.id)
        for target in ("PROCESSING", "SHIPPED", "COMPLETED"):
            await service.update_status(mo.id, status(target))

        report = await service.reconciliation(maker.id)

        assert report["order_count"] == 1
        assert report["total_amount"] == Decimal("25.00")
        assert report["settlement_amount"] == Decimal("3")
        assert len(report["days"]) == 1
        assert report["days"][0]["settlement_amount"] == Decimal("3")

    def test_settlement_amount(self):
        assert settlement_amount(Decimal("25"), Decimal("10")) == Decimal("3")
        assert settlement_amount(Decimal("24"), Decimal("10")) == Decimal("2")
        assert settlement_amount(Decimal("1999.99"), Decimal("12.5")) == Decimal("250")
