"""API endpoints for customer orders and their dispatch."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, status

from furnilink.api.deps import DB, CurrentActor
from furnilink.core.errors import PermissionDeniedError
from furnilink.core.permissions import Actor
from furnilink.models.order import Order
from furnilink.schemas.manufacturer_order import DispatchResponse, ManufacturerOrderResponse
from furnilink.schemas.order import OrderCreate, OrderResponse
from furnilink.services.order_dispatch_service import OrderDispatchService
from furnilink.services.order_service import OrderService

router = APIRouter()


def _can_view(actor: Actor, order: Order) -> bool:
    if actor.is_admin or order.placed_by == actor.id:
        return True
    if actor.manufacturer_id is None:
        return False
    if order.owner_manufacturer_id == actor.manufacturer_id:
        return True
    return any(item.manufacturer_id == actor.manufacturer_id for item in order.items)


def _require_placer(actor: Actor, order: Order) -> None:
    if not (actor.is_admin or order.placed_by == actor.id):
        raise PermissionDeniedError(
            "Only the placing account or an admin can do this",
            {"order_id": str(order.id)},
        )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    data: OrderCreate,
    db: DB,
    actor: CurrentActor,
):
    """
    Place an order. Every catalog line is priced for the caller through
    the authorization chain and frozen.
    """
    service = OrderService(db)
    return await service.place_order(data, placed_by=actor)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    db: DB,
    actor: CurrentActor,
):
    service = OrderService(db)
    order = await service.get_order(order_id)
    if not _can_view(actor, order):
        raise PermissionDeniedError("Not allowed to view this order", {"order_id": str(order_id)})
    return order


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: UUID,
    db: DB,
    actor: CurrentActor,
    reason: Optional[str] = Body(None, embed=True),
):
    service = OrderService(db)
    _require_placer(actor, await service.get_order(order_id))
    return await service.cancel_order(order_id, reason)


@router.post("/{order_id}/dispatch", response_model=DispatchResponse)
async def dispatch_order(
    order_id: UUID,
    db: DB,
    actor: CurrentActor,
):
    """Split the order into manufacturer orders. Succeeds once per order."""
    order_service = OrderService(db)
    order = await order_service.get_order(order_id)
    _require_placer(actor, order)

    service = OrderDispatchService(db)
    created = await service.dispatch_order(
        order_id,
        operator="admin" if actor.is_admin else actor.role,
        operator_id=actor.id,
    )
    return DispatchResponse(
        order_id=order.id,
        order_number=order.order_number,
        manufacturer_orders=[ManufacturerOrderResponse.model_validate(mo) for mo in created],
    )


@router.get("/{order_id}/dispatch-records", response_model=List[ManufacturerOrderResponse])
async def list_dispatch_records(
    order_id: UUID,
    db: DB,
    actor: CurrentActor,
):
    order_service = OrderService(db)
    order = await order_service.get_order(order_id)
    if not _can_view(actor, order):
        raise PermissionDeniedError("Not allowed to view this order", {"order_id": str(order_id)})

    service = OrderDispatchService(db)
    records = await service.list_dispatch_records(order_id)
    if not actor.is_admin and order.placed_by != actor.id:
        records = [r for r in records if r.manufacturer_id == actor.manufacturer_id]
    return records
