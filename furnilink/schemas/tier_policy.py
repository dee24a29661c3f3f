"""Pydantic schemas for tier commission policies."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from furnilink.schemas.base import (
    BaseCreateSchema,
    BaseResponseSchema,
    BaseUpdateSchema,
    blank_rate_to_none,
)


class TierRule(BaseModel):
    depth: int = Field(..., ge=0)
    commission_rate: Decimal = Field(..., ge=0, le=100)
    description: Optional[str] = None


class PartnerRule(BaseModel):
    partner_id: UUID
    partner_name: Optional[str] = None
    commission_rate: Decimal = Field(..., ge=0, le=100)
    description: Optional[str] = None


def _check_unique_depths(rules: List[TierRule]) -> List[TierRule]:
    depths = [r.depth for r in rules]
    if len(depths) != len(set(depths)):
        raise ValueError("Each depth may appear only once in a rule set")
    return sorted(rules, key=lambda r: r.depth)


def _check_unique_partners(rules: List[PartnerRule]) -> List[PartnerRule]:
    ids = [r.partner_id for r in rules]
    if len(ids) != len(set(ids)):
        raise ValueError("Each partner may appear only once in a rule set")
    return rules


class TierPolicyUpsert(BaseUpdateSchema):
    role_modules: Optional[List[dict]] = None
    min_sale_discount_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None

    @field_validator("min_sale_discount_rate", mode="before")
    @classmethod
    def zero_means_no_floor(cls, v):
        return blank_rate_to_none(v)


class TierRuleSetCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=100)
    rules: List[TierRule] = Field(default_factory=list)
    partner_rules: List[PartnerRule] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("rules")
    @classmethod
    def unique_depths(cls, v):
        return _check_unique_depths(v)

    @field_validator("partner_rules")
    @classmethod
    def unique_partners(cls, v):
        return _check_unique_partners(v)


class TierRuleSetUpdate(BaseUpdateSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    rules: Optional[List[TierRule]] = None
    partner_rules: Optional[List[PartnerRule]] = None

    @field_validator("rules")
    @classmethod
    def unique_depths(cls, v):
        return _check_unique_depths(v) if v is not None else v

    @field_validator("partner_rules")
    @classmethod
    def unique_partners(cls, v):
        return _check_unique_partners(v) if v is not None else v


class TierRuleSetResponse(BaseResponseSchema):
    id: UUID
    policy_id: UUID
    manufacturer_id: UUID
    name: str
    rules: List[dict]
    partner_rules: List[dict]
    is_active: bool
    activated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TierPolicyResponse(BaseResponseSchema):
    id: UUID
    manufacturer_id: UUID
    role_modules: List[dict]
    min_sale_discount_rate: Optional[Decimal] = None
    notes: Optional[str] = None
    updated_by: Optional[UUID] = None
    rule_sets: List[TierRuleSetResponse] = []
    created_at: datetime
    updated_at: datetime


class EffectiveTierRuleResponse(BaseModel):
    """Which rule the resolver would apply to an actor."""
    manufacturer_id: UUID
    actor_id: UUID
    depth: Optional[int] = None
    rule_set_id: Optional[UUID] = None
    rule_set_name: Optional[str] = None
    source: str
    commission_rate: Decimal
    rule: Optional[dict] = None
