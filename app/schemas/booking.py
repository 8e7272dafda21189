"""Pydantic schemas for bookings and booking articles."""
from pydantic import BaseModel, Field

from app.schemas.base import BaseCreateSchema, BaseResponseSchema, PaginatedResponse
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
import uuid

from app.models.booking import (
    BookingStatus, WorkflowContext, PaymentType, Urgency, RateType,
)


# ============================================
# REQUEST SCHEMAS
# ============================================

class Dimensions(BaseModel):
    """Package dimensions in centimetres."""
    length: Decimal
    width: Decimal
    height: Decimal


class BookingArticleCreate(BaseCreateSchema):
    """
    One shipment line.

    rate_type/rate_value are only used when no contract slab prices the
    line; without them the article's base rate applies.
    """
    article_id: Optional[uuid.UUID] = None
    name: Optional[str] = Field(default=None, max_length=200)
    quantity: int
    weight: Decimal
    charged_weight: Optional[Decimal] = None
    rate_type: Optional[RateType] = None
    rate_value: Optional[Decimal] = None
    dimensions: Optional[Dimensions] = None
    declared_value: Optional[Decimal] = None
    loading_charge_per_unit: Optional[Decimal] = None
    unloading_charge_per_unit: Optional[Decimal] = None
    adjustment_amount: Decimal = Decimal("0")
    loyalty_discount_percentage: Optional[Decimal] = None
    is_fragile: Optional[bool] = None


class BookingCreate(BaseCreateSchema):
    org_id: Optional[uuid.UUID] = None
    branch_id: uuid.UUID
    from_branch_id: Optional[uuid.UUID] = None
    to_branch_id: Optional[uuid.UUID] = None
    from_location: str = Field(..., min_length=1, max_length=100)
    to_location: str = Field(..., min_length=1, max_length=100)
    sender_id: uuid.UUID
    receiver_id: uuid.UUID
    payment_mode: PaymentType
    pickup_date: date
    urgency: Urgency = Urgency.STANDARD
    total_amount: Optional[Decimal] = None
    articles: List[BookingArticleCreate] = Field(default_factory=list)


class BookingStatusUpdate(BaseModel):
    """expected_status is the status the writer last observed."""
    status: BookingStatus
    workflow_context: WorkflowContext
    expected_status: BookingStatus
    cancellation_reason: Optional[str] = None


# ============================================
# RESPONSE SCHEMAS
# ============================================

class BookingArticleResponse(BaseResponseSchema):
    id: uuid.UUID
    booking_id: uuid.UUID
    line_number: int
    article_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    quantity: int
    actual_weight: Decimal
    charged_weight: Decimal
    rate_type: str
    rate_value: Decimal
    charge_basis: str
    rate_source: str
    rate_contract_id: Optional[uuid.UUID] = None
    rate_slab_id: Optional[uuid.UUID] = None
    freight_amount: Decimal
    loading_charges: Decimal
    unloading_charges: Decimal
    surcharge_amount: Decimal
    adjustment_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    declared_value: Optional[Decimal] = None
    total_amount: Decimal


class BookingBrief(BaseResponseSchema):
    id: uuid.UUID
    lr_number: str
    organization_id: uuid.UUID
    branch_id: uuid.UUID
    from_branch_id: Optional[uuid.UUID] = None
    to_branch_id: Optional[uuid.UUID] = None
    from_location: str
    to_location: str
    status: str
    booking_date: date
    pickup_date: date
    total_amount: Decimal
    created_at: datetime


class BookingResponse(BookingBrief):
    sender_id: uuid.UUID
    receiver_id: uuid.UUID
    payment_type: str
    urgency: str
    version: int
    loaded_at: Optional[datetime] = None
    in_transit_at: Optional[datetime] = None
    unloaded_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    articles: List[BookingArticleResponse] = []


class BookingListResponse(PaginatedResponse[BookingBrief]):
    """Paginated booking list."""
    pass
