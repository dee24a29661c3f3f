"""
Tier Policy Service

Per-manufacturer commission policy: one policy document per manufacturer
holding named rule sets (depth rules + partner overrides).
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from furnilink.core.errors import ConflictError, NotFoundError
from furnilink.models.authorization import as_utc
from furnilink.models.manufacturer import Manufacturer
from furnilink.models.tier_policy import TierCommissionRuleSet, TierPolicy
from furnilink.schemas.tier_policy import (
    TierPolicyUpsert,
    TierRuleSetCreate,
    TierRuleSetUpdate,
)

logger = logging.getLogger(__name__)


def _latest_activation(rule_set: TierCommissionRuleSet) -> datetime:
    return as_utc(rule_set.activated_at or rule_set.created_at)


class TierPolicyService:
    """Service for tier commission policies"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_policy(self, manufacturer_id: uuid.UUID) -> Optional[TierPolicy]:
        result = await self.db.execute(
            select(TierPolicy)
            .options(selectinload(TierPolicy.rule_sets))
            .where(TierPolicy.manufacturer_id == manufacturer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_policy(self, manufacturer_id: uuid.UUID) -> TierPolicy:
        policy = await self._load_policy(manufacturer_id)
        if not policy:
            raise NotFoundError("TierPolicy", manufacturer_id)
        return policy

    async def min_sale_discount_rate(self, manufacturer_id: uuid.UUID) -> Optional[Decimal]:
        """Lowest discount rate a per-product override may set, if any."""
        result = await self.db.execute(
            select(TierPolicy.min_sale_discount_rate)
            .where(TierPolicy.manufacturer_id == manufacturer_id)
        )
        floor = result.scalar_one_or_none()
        return floor if floor else None

    async def upsert_policy(
        self,
        manufacturer_id: uuid.UUID,
        data: TierPolicyUpsert,
        updated_by: Optional[uuid.UUID] = None,
    ) -> TierPolicy:
        """Create the manufacturer's policy document on first write."""
        policy = await self._load_policy(manufacturer_id)
        if not policy:
            if not await self.db.get(Manufacturer, manufacturer_id):
                raise NotFoundError("Manufacturer", manufacturer_id)
            policy = TierPolicy(manufacturer_id=manufacturer_id, role_modules=[], rule_sets=[])
            self.db.add(policy)
            logger.info(f"Tier policy created for manufacturer {manufacturer_id}")

        changes = data.model_dump(exclude_unset=True)
        if "role_modules" in changes:
            policy.role_modules = list(data.role_modules or [])
        if "min_sale_discount_rate" in changes:
            policy.min_sale_discount_rate = data.min_sale_discount_rate
        if "notes" in changes:
            policy.notes = data.notes
        policy.updated_by = updated_by

        await self.db.commit()
        return await self.get_policy(manufacturer_id)

    async def get_rule_set(self, rule_set_id: uuid.UUID) -> TierCommissionRuleSet:
        rule_set = await self.db.get(TierCommissionRuleSet, rule_set_id)
        if not rule_set:
            raise NotFoundError("TierCommissionRuleSet", rule_set_id)
        return rule_set

    async def _check_name(
        self, policy_id: uuid.UUID, name: str, exclude_id: Optional[uuid.UUID] = None
    ) -> None:
        query = select(TierCommissionRuleSet.id).where(
            TierCommissionRuleSet.policy_id == policy_id,
            TierCommissionRuleSet.name == name,
        )
        if exclude_id:
            query = query.where(TierCommissionRuleSet.id != exclude_id)
        if (await self.db.execute(query)).scalar_one_or_none():
            raise ConflictError(f"Rule set '{name}' already exists", {"name": name})

    async def create_rule_set(
        self,
        manufacturer_id: uuid.UUID,
        data: TierRuleSetCreate,
        updated_by: Optional[uuid.UUID] = None,
    ) -> TierCommissionRuleSet:
        policy = await self._load_policy(manufacturer_id)
        if not policy:
            policy = await self.upsert_policy(manufacturer_id, TierPolicyUpsert(), updated_by)
        await self._check_name(policy.id, data.name)

        now = datetime.now(timezone.utc)
        rule_set = TierCommissionRuleSet(
            policy_id=policy.id,
            manufacturer_id=manufacturer_id,
            name=data.name,
            rules=[r.model_dump(mode="json") for r in data.rules],
            partner_rules=[r.model_dump(mode="json") for r in data.partner_rules],
            is_active=data.is_active,
            activated_at=now if data.is_active else None,
        )
        self.db.add(rule_set)
        await self.db.commit()
        await self.db.refresh(rule_set)

        logger.info(
            f"Tier rule set '{rule_set.name}' created for manufacturer {manufacturer_id} "
            f"({len(rule_set.rules)} depth rules, {len(rule_set.partner_rules)} partner rules)"
        )
        return rule_set

    async def update_rule_set(
        self, rule_set_id: uuid.UUID, data: TierRuleSetUpdate
    ) -> TierCommissionRuleSet:
        rule_set = await self.get_rule_set(rule_set_id)

        if data.name is not None and data.name != rule_set.name:
            await self._check_name(rule_set.policy_id, data.name, exclude_id=rule_set.id)
            rule_set.name = data.name
        # JSON columns are not mutation-tracked; always assign new lists
        if data.rules is not None:
            rule_set.rules = [r.model_dump(mode="json") for r in data.rules]
        if data.partner_rules is not None:
            rule_set.partner_rules = [r.model_dump(mode="json") for r in data.partner_rules]

        await self.db.commit()
        await self.db.refresh(rule_set)
        return rule_set

    async def set_rule_set_active(
        self, rule_set_id: uuid.UUID, is_active: bool
    ) -> TierCommissionRuleSet:
        """Activation stamps activated_at, which decides the effective set."""
        rule_set = await self.get_rule_set(rule_set_id)
        rule_set.is_active = is_active
        if is_active:
            rule_set.activated_at = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(rule_set)

        logger.info(
            f"Tier rule set '{rule_set.name}' {'activated' if is_active else 'deactivated'}"
        )
        return rule_set

    async def effective_rule_set(
        self,
        manufacturer_id: uuid.UUID,
        preferred_ids: Iterable[str] = (),
    ) -> Optional[TierCommissionRuleSet]:
        """
        The rule set in force for a resolution.

        Sets attached to the depth-0 edge take priority; otherwise the
        manufacturer's most recently activated active set.
        """
        result = await self.db.execute(
            select(TierCommissionRuleSet).where(
                TierCommissionRuleSet.manufacturer_id == manufacturer_id,
                TierCommissionRuleSet.is_active.is_(True),
            )
        )
        active: List[TierCommissionRuleSet] = list(result.scalars().all())
        if not active:
            return None

        preferred = {str(i) for i in preferred_ids or ()}
        attached = [rs for rs in active if str(rs.id) in preferred]
        candidates = attached or active
        return max(candidates, key=_latest_activation)
