"""API endpoints for tier commission policies and rule sets."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, status

from furnilink.api.deps import DB, CurrentActor, Permissions
from furnilink.schemas.tier_policy import (
    EffectiveTierRuleResponse,
    TierPolicyResponse,
    TierPolicyUpsert,
    TierRuleSetCreate,
    TierRuleSetResponse,
    TierRuleSetUpdate,
)
from furnilink.services.commission_resolver import CommissionResolver
from furnilink.services.tier_policy_service import TierPolicyService

router = APIRouter()


@router.get("/{manufacturer_id}", response_model=TierPolicyResponse)
async def get_tier_policy(
    manufacturer_id: UUID,
    db: DB,
    permissions: Permissions,
):
    permissions.require_manufacturer(manufacturer_id)
    service = TierPolicyService(db)
    return await service.get_policy(manufacturer_id)


@router.put("/{manufacturer_id}", response_model=TierPolicyResponse)
async def upsert_tier_policy(
    manufacturer_id: UUID,
    data: TierPolicyUpsert,
    db: DB,
    actor: CurrentActor,
    permissions: Permissions,
):
    """Create or update the manufacturer's policy document."""
    permissions.require_manufacturer(manufacturer_id)
    service = TierPolicyService(db)
    return await service.upsert_policy(manufacturer_id, data, updated_by=actor.id)


@router.post(
    "/{manufacturer_id}/rule-sets",
    response_model=TierRuleSetResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_rule_set(
    manufacturer_id: UUID,
    data: TierRuleSetCreate,
    db: DB,
    actor: CurrentActor,
    permissions: Permissions,
):
    permissions.require_manufacturer(manufacturer_id)
    service = TierPolicyService(db)
    return await service.create_rule_set(manufacturer_id, data, updated_by=actor.id)


@router.patch("/rule-sets/{rule_set_id}", response_model=TierRuleSetResponse)
async def update_rule_set(
    rule_set_id: UUID,
    data: TierRuleSetUpdate,
    db: DB,
    permissions: Permissions,
):
    service = TierPolicyService(db)
    rule_set = await service.get_rule_set(rule_set_id)
    permissions.require_manufacturer(rule_set.manufacturer_id)
    return await service.update_rule_set(rule_set_id, data)


@router.post("/rule-sets/{rule_set_id}/activate", response_model=TierRuleSetResponse)
async def activate_rule_set(
    rule_set_id: UUID,
    db: DB,
    permissions: Permissions,
):
    """Activating makes this the newest set, so it wins effective-set selection."""
    service = TierPolicyService(db)
    rule_set = await service.get_rule_set(rule_set_id)
    permissions.require_manufacturer(rule_set.manufacturer_id)
    return await service.set_rule_set_active(rule_set_id, True)


@router.post("/rule-sets/{rule_set_id}/deactivate", response_model=TierRuleSetResponse)
async def deactivate_rule_set(
    rule_set_id: UUID,
    db: DB,
    permissions: Permissions,
):
    service = TierPolicyService(db)
    rule_set = await service.get_rule_set(rule_set_id)
    permissions.require_manufacturer(rule_set.manufacturer_id)
    return await service.set_rule_set_active(rule_set_id, False)


@router.get("/{manufacturer_id}/effective-rule", response_model=EffectiveTierRuleResponse)
async def get_effective_tier_rule(
    manufacturer_id: UUID,
    db: DB,
    actor: CurrentActor,
    permissions: Permissions,
    actor_id: Optional[UUID] = None,
):
    """
    The commission rule that applies to an actor (default: the caller).

    Only the manufacturer itself may inspect other actors.
    """
    target = actor_id or actor.resolution_id
    if target != actor.resolution_id:
        permissions.require_manufacturer(manufacturer_id)
    resolver = CommissionResolver(db)
    return await resolver.effective_tier_rule(manufacturer_id, target)
