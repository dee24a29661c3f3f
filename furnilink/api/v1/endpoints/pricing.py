"""API endpoints for effective discount and commission resolution."""
from fastapi import APIRouter

from furnilink.api.deps import DB, CurrentActor, Permissions
from furnilink.schemas.pricing import RateResolutionResponse, RateResolveRequest
from furnilink.services.commission_resolver import CommissionResolver

router = APIRouter()


@router.post("/resolve", response_model=RateResolutionResponse)
async def resolve_rate(
    data: RateResolveRequest,
    db: DB,
    actor: CurrentActor,
    permissions: Permissions,
):
    """
    Resolve the discount and per-hop commissions one actor gets on one
    product, priced when a list price is given or the product has one.

    Callers resolve for themselves; the manufacturer (or an admin) may
    resolve for anyone in its network.
    """
    actor_id = data.actor_id or actor.resolution_id
    if actor_id != actor.resolution_id:
        permissions.require_manufacturer(data.manufacturer_id)

    resolver = CommissionResolver(db)
    resolution = await resolver.resolve_product(
        data.manufacturer_id,
        actor_id,
        data.product_id,
        list_price=data.list_price,
        quantity=data.quantity,
    )
    return RateResolutionResponse.model_validate(resolution)
