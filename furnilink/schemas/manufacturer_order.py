"""Pydantic schemas for manufacturer sub-orders."""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from furnilink.core.enum_utils import VALID_SUB_ORDER_STATUSES, create_uppercase_validator
from furnilink.models.manufacturer_order import ManufacturerOrderStatus
from furnilink.schemas.base import BaseResponseSchema, BaseUpdateSchema


class ManufacturerOrderConfirm(BaseUpdateSchema):
    remark: Optional[str] = None


class ManufacturerOrderStatusUpdate(BaseUpdateSchema):
    status: ManufacturerOrderStatus
    tracking_no: Optional[str] = Field(None, max_length=100)
    tracking_company: Optional[str] = Field(None, max_length=100)
    remark: Optional[str] = None

    _normalize_status = create_uppercase_validator("status", VALID_SUB_ORDER_STATUSES)


class ManufacturerAssign(BaseUpdateSchema):
    manufacturer_id: UUID


class ManufacturerOrderLogResponse(BaseResponseSchema):
    seq: int
    action: str
    content: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    operator: str
    operator_id: Optional[UUID] = None
    created_at: datetime


class ManufacturerOrderResponse(BaseResponseSchema):
    id: UUID
    order_id: UUID
    order_number: str
    manufacturer_key: str
    manufacturer_id: Optional[UUID] = None
    manufacturer_name: Optional[str] = None
    needs_assignment: bool
    items: List[dict]
    total_amount: Decimal
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    status: str
    tracking_no: Optional[str] = None
    tracking_company: Optional[str] = None
    manufacturer_remark: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    logs: List[ManufacturerOrderLogResponse] = []
    created_at: datetime
    updated_at: datetime


class ManufacturerOrderListResponse(BaseModel):
    items: List[ManufacturerOrderResponse]
    total: int
    page: int
    size: int
    pages: int


class DispatchResponse(BaseModel):
    order_id: UUID
    order_number: str
    manufacturer_orders: List[ManufacturerOrderResponse]


class ManufacturerOrderStats(BaseModel):
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    processing: int = 0
    shipped: int = 0
    completed: int = 0
    cancelled: int = 0


class ReconciliationDay(BaseModel):
    date: date
    order_count: int
    total_amount: Decimal
    settlement_amount: Decimal


class ReconciliationResponse(BaseModel):
    manufacturer_id: UUID
    start_date: date
    end_date: date
    commission_rate: Decimal
    days: List[ReconciliationDay]
    order_count: int
    total_amount: Decimal
    settlement_amount: Decimal
