"""API endpoints for manufacturer sub-orders (manufacturer backend)."""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from furnilink.api.deps import DB, AdminActor, CurrentActor, Permissions
from furnilink.core.errors import MarketplaceError
from furnilink.core.permissions import PermissionChecker
from furnilink.models.manufacturer_order import ManufacturerOrder
from furnilink.schemas.manufacturer_order import (
    ManufacturerAssign,
    ManufacturerOrderConfirm,
    ManufacturerOrderListResponse,
    ManufacturerOrderResponse,
    ManufacturerOrderStats,
    ManufacturerOrderStatusUpdate,
    ReconciliationResponse,
)
from furnilink.services.manufacturer_order_service import ManufacturerOrderService

router = APIRouter()


def _operator(permissions: PermissionChecker) -> str:
    return "admin" if permissions.is_admin() else "manufacturer"


async def _get_owned(
    service: ManufacturerOrderService,
    manufacturer_order_id: UUID,
    permissions: PermissionChecker,
) -> ManufacturerOrder:
    # Unassigned buckets have no manufacturer, so only admins pass here
    manufacturer_order = await service.get_manufacturer_order(manufacturer_order_id)
    permissions.require_manufacturer(manufacturer_order.manufacturer_id)
    return manufacturer_order


@router.get("", response_model=ManufacturerOrderListResponse)
async def list_manufacturer_orders(
    db: DB,
    permissions: Permissions,
    status: Optional[str] = None,
    manufacturer_id: Optional[UUID] = Query(None, description="Super admins only"),
    keyword: Optional[str] = Query(None, description="Order number, customer name or phone"),
    needs_assignment: Optional[bool] = None,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    """Sub-orders visible to the caller; everyone but a super admin sees only their own manufacturer."""
    service = ManufacturerOrderService(db)
    items, total = await service.list_manufacturer_orders(
        status=status,
        manufacturer_id=permissions.scoped_manufacturer_id(manufacturer_id),
        keyword=keyword,
        needs_assignment=needs_assignment,
        page=page,
        size=size,
    )
    return ManufacturerOrderListResponse(
        items=[ManufacturerOrderResponse.model_validate(mo) for mo in items],
        total=total,
        page=page,
        size=size,
        pages=(total + size - 1) // size if size > 0 else 1,
    )


@router.get("/stats", response_model=ManufacturerOrderStats)
async def get_manufacturer_order_stats(
    db: DB,
    permissions: Permissions,
    manufacturer_id: Optional[UUID] = None,
):
    service = ManufacturerOrderService(db)
    return await service.get_stats(permissions.scoped_manufacturer_id(manufacturer_id))


@router.get("/reconciliation", response_model=ReconciliationResponse)
async def get_reconciliation(
    db: DB,
    permissions: Permissions,
    manufacturer_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
):
    """Completed sub-orders per day with the settlement owed."""
    target = permissions.scoped_manufacturer_id(manufacturer_id)
    if target is None:
        raise MarketplaceError("manufacturer_id is required")
    service = ManufacturerOrderService(db)
    return await service.reconciliation(target, start_date, end_date)


@router.get("/{manufacturer_order_id}", response_model=ManufacturerOrderResponse)
async def get_manufacturer_order(
    manufacturer_order_id: UUID,
    db: DB,
    permissions: Permissions,
):
    service = ManufacturerOrderService(db)
    return await _get_owned(service, manufacturer_order_id, permissions)


@router.post("/{manufacturer_order_id}/confirm", response_model=ManufacturerOrderResponse)
async def confirm_manufacturer_order(
    manufacturer_order_id: UUID,
    data: ManufacturerOrderConfirm,
    db: DB,
    actor: CurrentActor,
    permissions: Permissions,
):
    service = ManufacturerOrderService(db)
    await _get_owned(service, manufacturer_order_id, permissions)
    return await service.confirm(
        manufacturer_order_id,
        remark=data.remark,
        operator=_operator(permissions),
        operator_id=actor.id,
    )


@router.put("/{manufacturer_order_id}/status", response_model=ManufacturerOrderResponse)
async def update_manufacturer_order_status(
    manufacturer_order_id: UUID,
    data: ManufacturerOrderStatusUpdate,
    db: DB,
    actor: CurrentActor,
    permissions: Permissions,
):
    """Move a sub-order along its lifecycle; shipping records tracking info."""
    service = ManufacturerOrderService(db)
    await _get_owned(service, manufacturer_order_id, permissions)
    return await service.update_status(
        manufacturer_order_id,
        data,
        operator=_operator(permissions),
        operator_id=actor.id,
    )


@router.post("/{manufacturer_order_id}/assign", response_model=ManufacturerOrderResponse)
async def assign_manufacturer(
    manufacturer_order_id: UUID,
    data: ManufacturerAssign,
    db: DB,
    admin: AdminActor,
):
    """Attach an unassigned bucket to a manufacturer."""
    service = ManufacturerOrderService(db)
    return await service.assign_manufacturer(
        manufacturer_order_id,
        data.manufacturer_id,
        operator="admin",
        operator_id=admin.id,
    )
