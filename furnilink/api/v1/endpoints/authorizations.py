"""API endpoints for authorization edges."""
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from furnilink.api.deps import DB, CurrentActor, Permissions
from furnilink.core.errors import MarketplaceError, PermissionDeniedError
from furnilink.core.permissions import Actor, ActorRole
from furnilink.models.authorization import AuthorizationEdge
from furnilink.schemas.authorization import (
    AuthorizationActiveUpdate,
    AuthorizationApprove,
    AuthorizationCreate,
    AuthorizationEnabledUpdate,
    AuthorizationListQuery,
    AuthorizationListResponse,
    AuthorizationPricingUpdate,
    AuthorizationProductDiscountUpdate,
    AuthorizationReject,
    AuthorizationRequestCreate,
    AuthorizationResponse,
    TierHierarchyNode,
    TierHierarchyResponse,
)
from furnilink.services.authorization_service import AuthorizationService

router = APIRouter()


def _is_grantee(actor: Actor, edge: AuthorizationEdge) -> bool:
    return edge.grantee_id in {actor.id, actor.manufacturer_id}


def _require_party(actor: Actor, edge: AuthorizationEdge, grantor_only: bool = False) -> None:
    if actor.is_admin or actor.manufacturer_id == edge.from_manufacturer_id:
        return
    if not grantor_only and _is_grantee(actor, edge):
        return
    raise PermissionDeniedError(
        "Not a party to this authorization", {"authorization_id": str(edge.id)}
    )


@router.post("", response_model=AuthorizationResponse, status_code=status.HTTP_201_CREATED)
async def grant_authorization(
    data: AuthorizationCreate,
    db: DB,
    actor: CurrentActor,
    permissions: Permissions,
):
    """Grant resale rights on the caller's catalog (admins may grant for any manufacturer)."""
    grantor_id = data.from_manufacturer_id if actor.is_admin else actor.manufacturer_id
    if grantor_id is None:
        raise MarketplaceError("from_manufacturer_id is required when granting on behalf of a manufacturer")
    permissions.require_manufacturer(grantor_id)

    service = AuthorizationService(db)
    return await service.grant_authorization(data, grantor_id, created_by=actor.id)


@router.post("/request", response_model=AuthorizationResponse, status_code=status.HTTP_201_CREATED)
async def request_authorization(
    data: AuthorizationRequestCreate,
    db: DB,
    actor: CurrentActor,
):
    """Designer asks a manufacturer for resale rights."""
    if actor.role != ActorRole.DESIGNER.value:
        raise PermissionDeniedError("Only designers can request authorization")
    service = AuthorizationService(db)
    return await service.request_authorization(data, actor.id)


@router.get("", response_model=AuthorizationListResponse)
async def list_authorizations(
    db: DB,
    actor: CurrentActor,
    query: Annotated[AuthorizationListQuery, Query()],
    node_id: Optional[UUID] = Query(None, description="Admins only: list for another node"),
):
    if node_id and actor.is_admin:
        node = node_id
    elif query.direction == "granted":
        if not actor.manufacturer_id:
            raise PermissionDeniedError("Account is not linked to a manufacturer")
        node = actor.manufacturer_id
    else:
        node = actor.resolution_id

    service = AuthorizationService(db)
    edges = await service.list_authorizations(
        node, query.direction, query.status.value if query.status else None
    )
    return AuthorizationListResponse(
        items=[AuthorizationResponse.model_validate(e) for e in edges],
        total=len(edges),
    )


@router.get("/hierarchy", response_model=TierHierarchyResponse)
async def get_tier_hierarchy(
    db: DB,
    actor: CurrentActor,
    node_id: Optional[UUID] = None,
):
    """Received edges with their parent edge and the grants made under each."""
    node = node_id if (node_id and actor.is_admin) else actor.resolution_id
    service = AuthorizationService(db)
    nodes = await service.get_tier_hierarchy(node)
    return TierHierarchyResponse(
        actor_id=node,
        nodes=[
            TierHierarchyNode(
                authorization=AuthorizationResponse.model_validate(n["authorization"]),
                parent=AuthorizationResponse.model_validate(n["parent"]) if n["parent"] else None,
                children=[AuthorizationResponse.model_validate(c) for c in n["children"]],
            )
            for n in nodes
        ],
    )


@router.get("/{authorization_id}", response_model=AuthorizationResponse)
async def get_authorization(
    authorization_id: UUID,
    db: DB,
    actor: CurrentActor,
):
    service = AuthorizationService(db)
    edge = await service.get_authorization(authorization_id)
    _require_party(actor, edge)
    return edge


@router.post("/{authorization_id}/approve", response_model=AuthorizationResponse)
async def approve_authorization(
    authorization_id: UUID,
    data: AuthorizationApprove,
    db: DB,
    actor: CurrentActor,
):
    service = AuthorizationService(db)
    _require_party(actor, await service.get_authorization(authorization_id), grantor_only=True)
    return await service.approve_authorization(authorization_id, data)


@router.post("/{authorization_id}/reject", response_model=AuthorizationResponse)
async def reject_authorization(
    authorization_id: UUID,
    data: AuthorizationReject,
    db: DB,
    actor: CurrentActor,
):
    service = AuthorizationService(db)
    _require_party(actor, await service.get_authorization(authorization_id), grantor_only=True)
    return await service.reject_authorization(authorization_id, data.reason)


@router.post("/{authorization_id}/revoke", response_model=AuthorizationResponse)
async def revoke_authorization(
    authorization_id: UUID,
    db: DB,
    actor: CurrentActor,
):
    """Soft revoke; historical orders keep referencing the edge."""
    service = AuthorizationService(db)
    _require_party(actor, await service.get_authorization(authorization_id), grantor_only=True)
    return await service.revoke_authorization(authorization_id)


@router.patch("/{authorization_id}/active", response_model=AuthorizationResponse)
async def set_authorization_active(
    authorization_id: UUID,
    data: AuthorizationActiveUpdate,
    db: DB,
    actor: CurrentActor,
):
    """Suspend or resume cooperation. Either party may do this."""
    service = AuthorizationService(db)
    _require_party(actor, await service.get_authorization(authorization_id))
    return await service.set_active(authorization_id, data.is_active)


@router.patch("/{authorization_id}/enabled", response_model=AuthorizationResponse)
async def set_authorization_enabled(
    authorization_id: UUID,
    data: AuthorizationEnabledUpdate,
    db: DB,
    actor: CurrentActor,
):
    """Grantee toggles whether authorized products show in their shop."""
    service = AuthorizationService(db)
    edge = await service.get_authorization(authorization_id)
    if not (actor.is_admin or _is_grantee(actor, edge)):
        raise PermissionDeniedError("Only the grantee can toggle shop visibility")
    return await service.set_enabled(authorization_id, data.is_enabled)


@router.patch("/{authorization_id}/pricing", response_model=AuthorizationResponse)
async def update_authorization_pricing(
    authorization_id: UUID,
    data: AuthorizationPricingUpdate,
    db: DB,
    actor: CurrentActor,
):
    service = AuthorizationService(db)
    _require_party(actor, await service.get_authorization(authorization_id), grantor_only=True)
    return await service.update_pricing(authorization_id, data)


@router.put("/{authorization_id}/product-discounts/{product_id}", response_model=AuthorizationResponse)
async def set_authorization_product_discount(
    authorization_id: UUID,
    product_id: UUID,
    data: AuthorizationProductDiscountUpdate,
    db: DB,
    actor: CurrentActor,
):
    """Grantor sets (or clears) the discount for one product on this edge."""
    service = AuthorizationService(db)
    _require_party(actor, await service.get_authorization(authorization_id), grantor_only=True)
    return await service.set_product_discount(authorization_id, product_id, data.discount_rate)
