"""Pydantic schemas for rate contracts, slabs and rate lookup."""
from pydantic import BaseModel, Field, model_validator

from app.schemas.base import BaseCreateSchema, BaseResponseSchema, PaginatedResponse
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
import uuid

from app.models.rate_contract import ContractStatus, ContractType, ChargeBasis


# ============================================
# RATE SLAB SCHEMAS
# ============================================

class RateSlabCreate(BaseCreateSchema):
    """Create schema for a contract rate slab."""
    from_location: str = Field(..., min_length=1, max_length=100)
    to_location: str = Field(..., min_length=1, max_length=100)
    article_id: Optional[uuid.UUID] = None
    article_category: Optional[str] = Field(default=None, max_length=100)
    weight_from: Decimal = Field(default=Decimal("0"), ge=0)
    weight_to: Decimal = Field(..., gt=0)
    charge_basis: ChargeBasis = ChargeBasis.WEIGHT
    rate_per_kg: Optional[Decimal] = Field(default=None, ge=0)
    rate_per_unit: Optional[Decimal] = Field(default=None, ge=0)
    minimum_charge: Decimal = Field(default=Decimal("0"), ge=0)


class RateSlabBulkCreate(BaseModel):
    slabs: List[RateSlabCreate] = Field(..., min_length=1)


class RateSlabResponse(BaseResponseSchema):
    id: uuid.UUID
    rate_contract_id: uuid.UUID
    from_location: str
    to_location: str
    article_id: Optional[uuid.UUID] = None
    article_category: Optional[str] = None
    weight_from: Decimal
    weight_to: Decimal
    charge_basis: str
    rate_per_kg: Optional[Decimal] = None
    rate_per_unit: Optional[Decimal] = None
    minimum_charge: Decimal
    is_active: bool


# ============================================
# RATE CONTRACT SCHEMAS
# ============================================

class RateContractCreate(BaseCreateSchema):
    customer_id: uuid.UUID
    branch_id: Optional[uuid.UUID] = None
    contract_number: str = Field(..., min_length=1, max_length=50)
    contract_type: ContractType = ContractType.STANDARD
    valid_from: date
    valid_until: date
    payment_terms: int = Field(default=30, ge=0)
    credit_limit: Decimal = Field(default=Decimal("0"), ge=0)
    base_discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    notes: Optional[str] = None
    slabs: List[RateSlabCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_validity_window(self):
        if self.valid_until < self.valid_from:
            raise ValueError("valid_until must be on or after valid_from")
        return self


class RateContractResponse(BaseResponseSchema):
    id: uuid.UUID
    organization_id: uuid.UUID
    branch_id: Optional[uuid.UUID] = None
    customer_id: uuid.UUID
    contract_number: str
    contract_type: str
    valid_from: date
    valid_until: date
    payment_terms: int
    credit_limit: Decimal
    base_discount_percentage: Decimal
    status: str
    notes: Optional[str] = None
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    created_at: datetime


class RateContractDetailResponse(RateContractResponse):
    slabs: List[RateSlabResponse] = []


class RateContractListResponse(PaginatedResponse[RateContractResponse]):
    """Paginated rate contract list."""
    pass


class ContractExpireRequest(BaseModel):
    as_of: date


class ContractExpireResponse(BaseModel):
    expired: int


# ============================================
# RATE LOOKUP
# ============================================

class RateLookupRequest(BaseModel):
    customer_id: uuid.UUID
    from_location: str = Field(..., min_length=1)
    to_location: str = Field(..., min_length=1)
    article_id: Optional[uuid.UUID] = None
    weight: Decimal = Field(..., gt=0)
    booking_date: Optional[date] = None


class RateLookupResponse(BaseModel):
    """Display-only result for the pricing screen."""
    hasContract: bool
    hasRate: bool
    rate_contract: Optional[RateContractResponse] = None
    rate_slab: Optional[RateSlabResponse] = None
    message: str
