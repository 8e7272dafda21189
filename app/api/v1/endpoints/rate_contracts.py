"""Rate contract API endpoints and the contract rate lookup."""
from typing import Optional
import uuid
from math import ceil
from datetime import date

from fastapi import APIRouter, Query, status

from app.api.deps import DB, CurrentPrincipal
from app.models.rate_contract import ContractStatus
from app.schemas.rate_contract import (
    ContractExpireRequest,
    ContractExpireResponse,
    RateContractCreate,
    RateContractDetailResponse,
    RateContractListResponse,
    RateContractResponse,
    RateLookupRequest,
    RateLookupResponse,
    RateSlabBulkCreate,
    RateSlabResponse,
)
from app.services.rate_contract_service import RateContractService
from app.services.rate_resolver import RateResolver


router = APIRouter()


# ==================== RATE LOOKUP ====================

@router.post("/lookup", response_model=RateLookupResponse)
async def lookup_rate(
    data: RateLookupRequest,
    db: DB,
    principal: CurrentPrincipal,
):
    """
    Look up the contract rate a booking line would get.

    Display only. Booking creation resolves the rate again on its own.
    """
    result = await RateResolver(db).lookup(
        principal.org_id,
        data.customer_id,
        data.from_location,
        data.to_location,
        data.article_id,
        data.weight,
        data.booking_date or date.today(),
    )

    return RateLookupResponse(
        hasContract=result["hasContract"],
        hasRate=result["hasRate"],
        rate_contract=(
            RateContractResponse.model_validate(result["rate_contract"])
            if result["rate_contract"] is not None else None
        ),
        rate_slab=(
            RateSlabResponse.model_validate(result["rate_slab"])
            if result["rate_slab"] is not None else None
        ),
        message=result["message"],
    )


# ==================== CONTRACT CRUD ====================

@router.get("/contracts", response_model=RateContractListResponse)
async def list_contracts(
    db: DB,
    principal: CurrentPrincipal,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    customer_id: Optional[uuid.UUID] = Query(None),
    status: Optional[ContractStatus] = Query(None),
    active_on: Optional[date] = Query(None, description="Only contracts in force on this date"),
):
    """Get paginated list of rate contracts."""
    contracts, total = await RateContractService(db, principal).list_contracts(
        page=page,
        size=size,
        customer_id=customer_id,
        status=status.value if status else None,
        active_on=active_on,
    )

    return RateContractListResponse(
        items=[RateContractResponse.model_validate(c) for c in contracts],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.post(
    "/contracts",
    response_model=RateContractDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_contract(
    data: RateContractCreate,
    db: DB,
    principal: CurrentPrincipal,
):
    """Create a draft rate contract with optional slabs."""
    contract = await RateContractService(db, principal).create_contract(data)
    return RateContractDetailResponse.model_validate(contract)


@router.post("/contracts/expire", response_model=ContractExpireResponse)
async def expire_contracts(
    data: ContractExpireRequest,
    db: DB,
    principal: CurrentPrincipal,
):
    """Expire active contracts whose validity ended before as_of."""
    expired = await RateContractService(db, principal).expire_contracts(data.as_of)
    return ContractExpireResponse(expired=expired)


@router.get("/contracts/{contract_id}", response_model=RateContractDetailResponse)
async def get_contract(
    contract_id: uuid.UUID,
    db: DB,
    principal: CurrentPrincipal,
):
    """Get rate contract with its slabs."""
    contract = await RateContractService(db, principal).get_contract(contract_id)
    return RateContractDetailResponse.model_validate(contract)


@router.post(
    "/contracts/{contract_id}/slabs",
    response_model=RateContractDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_contract_slabs(
    contract_id: uuid.UUID,
    data: RateSlabBulkCreate,
    db: DB,
    principal: CurrentPrincipal,
):
    """Add slabs to a draft or active contract."""
    contract = await RateContractService(db, principal).add_slabs(contract_id, data.slabs)
    return RateContractDetailResponse.model_validate(contract)


@router.post("/contracts/{contract_id}/activate", response_model=RateContractResponse)
async def activate_contract(
    contract_id: uuid.UUID,
    db: DB,
    principal: CurrentPrincipal,
):
    contract = await RateContractService(db, principal).activate_contract(contract_id)
    return RateContractResponse.model_validate(contract)


@router.post("/contracts/{contract_id}/terminate", response_model=RateContractResponse)
async def terminate_contract(
    contract_id: uuid.UUID,
    db: DB,
    principal: CurrentPrincipal,
):
    contract = await RateContractService(db, principal).terminate_contract(contract_id)
    return RateContractResponse.model_validate(contract)


@router.delete("/slabs/{slab_id}", response_model=RateSlabResponse)
async def deactivate_slab(
    slab_id: uuid.UUID,
    db: DB,
    principal: CurrentPrincipal,
):
    """Deactivate a slab. Slabs are never hard deleted so past bookings keep their reference."""
    slab = await RateContractService(db, principal).deactivate_slab(slab_id)
    return RateSlabResponse.model_validate(slab)
