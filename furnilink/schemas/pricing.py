"""Pydantic schemas for effective-rate resolution."""
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from furnilink.schemas.base import BaseCreateSchema, BaseResponseSchema


class RateResolveRequest(BaseCreateSchema):
    """Price one product for one actor. `actor_id` defaults to the caller."""
    manufacturer_id: UUID
    product_id: UUID
    actor_id: Optional[UUID] = None
    list_price: Optional[Decimal] = Field(None, ge=0)
    quantity: int = Field(1, ge=1)


class CommissionHopResponse(BaseResponseSchema):
    depth: int
    grantor_id: UUID
    actor_id: UUID
    authorization_id: UUID
    commission_rate: Decimal
    source: str
    rule_set_id: Optional[UUID] = None
    commission_amount: Optional[Decimal] = None


class RateResolutionResponse(BaseResponseSchema):
    manufacturer_id: UUID
    actor_id: UUID
    product_id: str
    chain: List[UUID]
    is_owner: bool
    discount_rate: Decimal
    discount_source: str
    rule_set_id: Optional[UUID] = None
    commission_breakdown: List[CommissionHopResponse]
    list_price: Optional[Decimal] = None
    quantity: int = 1
    unit_price: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None
    manufacturer_margin: Optional[Decimal] = None
