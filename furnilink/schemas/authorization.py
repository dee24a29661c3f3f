"""Pydantic schemas for authorization edges."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from furnilink.core.enum_utils import (
    VALID_EDGE_STATUSES,
    create_uppercase_validator,
)
from furnilink.models.authorization import AuthorizationStatus
from furnilink.schemas.base import (
    BaseCreateSchema,
    BaseResponseSchema,
    BaseUpdateSchema,
    blank_rate_to_none,
)


class _RateOverrides(BaseModel):
    """Edge-level override rates; 0 or blank means "use the manufacturer default"."""
    min_discount_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)

    @field_validator("min_discount_rate", "commission_rate", mode="before")
    @classmethod
    def zero_means_unset(cls, v):
        return blank_rate_to_none(v)


class AuthorizationCreate(_RateOverrides, BaseCreateSchema):
    """Grant payload. Admins may pass `from_manufacturer_id`; others grant as their own manufacturer."""
    from_manufacturer_id: Optional[UUID] = None
    to_manufacturer_id: Optional[UUID] = None
    to_designer_id: Optional[UUID] = None
    scope: str = "ALL"
    categories: List[Any] = Field(default_factory=list)
    products: List[Any] = Field(default_factory=list)
    tier_rule_set_ids: List[UUID] = Field(default_factory=list)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one_grantee(self):
        if bool(self.to_manufacturer_id) == bool(self.to_designer_id):
            raise ValueError("Exactly one of to_manufacturer_id or to_designer_id is required")
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class AuthorizationRequestCreate(BaseCreateSchema):
    """Designer asks a manufacturer for resale rights."""
    manufacturer_id: UUID
    scope: str = "ALL"
    categories: List[Any] = Field(default_factory=list)
    products: List[Any] = Field(default_factory=list)
    notes: Optional[str] = None


class AuthorizationApprove(_RateOverrides, BaseUpdateSchema):
    """Terms the grantor may set while approving a request."""
    scope: Optional[str] = None
    categories: Optional[List[Any]] = None
    products: Optional[List[Any]] = None
    tier_rule_set_ids: Optional[List[UUID]] = None
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None


class AuthorizationReject(BaseUpdateSchema):
    reason: Optional[str] = None


class AuthorizationPricingUpdate(_RateOverrides, BaseUpdateSchema):
    """Grantor-side pricing edit. Only fields present in the payload change."""
    tier_rule_set_ids: Optional[List[UUID]] = None


class AuthorizationProductDiscountUpdate(BaseModel):
    """Per-product discount on one edge; 0 or blank removes the override."""
    discount_rate: Optional[Decimal] = Field(None, ge=0, le=100)

    @field_validator("discount_rate", mode="before")
    @classmethod
    def zero_means_unset(cls, v):
        return blank_rate_to_none(v)


class AuthorizationActiveUpdate(BaseModel):
    is_active: bool


class AuthorizationEnabledUpdate(BaseModel):
    is_enabled: bool


class AuthorizationListQuery(BaseModel):
    direction: str = "received"
    status: Optional[AuthorizationStatus] = None

    _normalize_status = create_uppercase_validator("status", VALID_EDGE_STATUSES)

    @field_validator("direction")
    @classmethod
    def check_direction(cls, v: str) -> str:
        v = v.lower()
        if v not in ("granted", "received"):
            raise ValueError("direction must be 'granted' or 'received'")
        return v


class AuthorizationResponse(BaseResponseSchema):
    id: UUID
    from_manufacturer_id: UUID
    to_manufacturer_id: Optional[UUID] = None
    to_designer_id: Optional[UUID] = None
    authorization_type: str
    scope: str
    categories: List[str] = []
    products: List[str] = []
    min_discount_rate: Optional[Decimal] = None
    commission_rate: Optional[Decimal] = None
    tier_rule_set_ids: List[str] = []
    product_discounts: Dict[str, str] = {}
    status: str
    effective_status: str
    is_enabled: bool
    valid_from: datetime
    valid_until: Optional[datetime] = None
    parent_authorization_id: Optional[UUID] = None
    tier_level: int
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    revoked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class AuthorizationListResponse(BaseModel):
    items: List[AuthorizationResponse]
    total: int


class TierHierarchyNode(BaseModel):
    """One received edge with its upstream parent and downstream children."""
    authorization: AuthorizationResponse
    parent: Optional[AuthorizationResponse] = None
    children: List[AuthorizationResponse] = []


class TierHierarchyResponse(BaseModel):
    actor_id: UUID
    nodes: List[TierHierarchyNode]
