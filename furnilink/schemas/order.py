"""Pydantic schemas for order placement."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from furnilink.schemas.base import BaseCreateSchema, BaseResponseSchema


class ShippingAddress(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    province: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    detail: Optional[str] = None


class OrderItemCreate(BaseModel):
    """
    Order line.

    Catalog lines give `product_id` and are priced through the resolver.
    Custom lines (no product) must carry `product_name` and `price`.
    """
    product_id: Optional[UUID] = None
    product_name: Optional[str] = None
    sku_id: Optional[str] = None
    sku_name: Optional[str] = None
    specs: Optional[dict] = None
    image: Optional[str] = None
    manufacturer_id: Optional[UUID] = None
    quantity: int = Field(1, ge=1)
    price: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_custom_line(self):
        if self.product_id is None and (self.price is None or not self.product_name):
            raise ValueError("Lines without product_id need product_name and price")
        return self


class OrderCreate(BaseCreateSchema):
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None
    items: List[OrderItemCreate] = Field(..., min_length=1)
    owner_manufacturer_id: Optional[UUID] = None
    notes: Optional[str] = None


class OrderItemResponse(BaseResponseSchema):
    id: UUID
    line_no: int
    product_id: Optional[UUID] = None
    product_name: str
    sku_id: Optional[str] = None
    sku_name: Optional[str] = None
    manufacturer_id: Optional[UUID] = None
    manufacturer_name: Optional[str] = None
    quantity: int
    list_price: Decimal
    price: Decimal
    discount_rate: Optional[Decimal] = None
    subtotal: Decimal
    commission_breakdown: List[dict] = []


class OrderResponse(BaseResponseSchema):
    id: UUID
    order_number: str
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[dict] = None
    placed_by: Optional[UUID] = None
    placed_by_role: Optional[str] = None
    owner_manufacturer_id: Optional[UUID] = None
    status: str
    subtotal: Decimal
    total_amount: Decimal
    dispatch_status: Optional[str] = None
    dispatched_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[OrderItemResponse] = []
    created_at: datetime
    updated_at: datetime
