"""Pydantic schemas for the manufacturer registry."""
from datetime import datetime
from typing import Optional, List
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from furnilink.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


class ManufacturerCreate(BaseCreateSchema):
    """Admin onboarding payload."""
    code: str = Field(..., min_length=1, max_length=30)
    name: str = Field(..., min_length=1, max_length=200)
    full_name: Optional[str] = Field(None, max_length=300)
    short_name: Optional[str] = Field(None, max_length=100)
    default_discount_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    default_commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class ManufacturerUpdate(BaseUpdateSchema):
    """Admin edit payload."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    full_name: Optional[str] = None
    short_name: Optional[str] = None
    status: Optional[str] = None
    default_discount_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    default_commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None


class ManufacturerResponse(BaseResponseSchema):
    """Manufacturer as returned by the API."""
    id: UUID
    code: str
    name: str
    full_name: Optional[str] = None
    short_name: Optional[str] = None
    display_name: str
    status: str
    default_discount_rate: Decimal
    default_commission_rate: Decimal
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ManufacturerListResponse(BaseModel):
    items: List[ManufacturerResponse]
    total: int
    skip: int = 0
    limit: int = 20


class LegacyManufacturerMatch(BaseModel):
    """Result of mapping a legacy free-text reference to a canonical id."""
    reference: str
    manufacturer_id: UUID
    code: str
    matched_field: str
