"""API endpoints for the manufacturer registry."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from furnilink.api.deps import DB, AdminActor, CurrentActor
from furnilink.schemas.manufacturer import (
    LegacyManufacturerMatch,
    ManufacturerCreate,
    ManufacturerListResponse,
    ManufacturerResponse,
    ManufacturerUpdate,
)
from furnilink.services.manufacturer_service import ManufacturerService

router = APIRouter()


@router.post("", response_model=ManufacturerResponse, status_code=status.HTTP_201_CREATED)
async def onboard_manufacturer(
    data: ManufacturerCreate,
    db: DB,
    admin: AdminActor,
):
    """Onboard a manufacturer under a canonical code."""
    service = ManufacturerService(db)
    return await service.onboard_manufacturer(data)


@router.get("", response_model=ManufacturerListResponse)
async def list_manufacturers(
    db: DB,
    actor: CurrentActor,
    keyword: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
):
    service = ManufacturerService(db)
    items, total = await service.list_manufacturers(
        keyword=keyword, status=status_filter, skip=skip, limit=limit
    )
    return ManufacturerListResponse(
        items=[ManufacturerResponse.model_validate(m) for m in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/match", response_model=LegacyManufacturerMatch)
async def match_legacy_manufacturer(
    db: DB,
    admin: AdminActor,
    reference: str = Query(..., min_length=1),
):
    """Migration helper: map a legacy name/code reference to a manufacturer id."""
    service = ManufacturerService(db)
    return await service.match_legacy_manufacturer(reference)


@router.get("/{manufacturer_id}", response_model=ManufacturerResponse)
async def get_manufacturer(
    manufacturer_id: UUID,
    db: DB,
    actor: CurrentActor,
):
    service = ManufacturerService(db)
    return await service.get_manufacturer(manufacturer_id)


@router.patch("/{manufacturer_id}", response_model=ManufacturerResponse)
async def update_manufacturer(
    manufacturer_id: UUID,
    data: ManufacturerUpdate,
    db: DB,
    admin: AdminActor,
):
    """Admin edit, including default discount and commission rates."""
    service = ManufacturerService(db)
    return await service.update_manufacturer(manufacturer_id, data)
