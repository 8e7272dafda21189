"""Booking API endpoints: creation, listing, status workflow and article lines."""
from typing import Optional
import uuid
from math import ceil
from datetime import date

from fastapi import APIRouter, Query, status

from app.api.deps import DB, CurrentPrincipal
from app.models.booking import BookingStatus
from app.schemas.booking import (
    BookingArticleCreate,
    BookingBrief,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingStatusUpdate,
)
from app.services.booking_service import BookingService


router = APIRouter()


# ==================== BOOKING CRUD ====================

@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    db: DB,
    principal: CurrentPrincipal,
):
    """
    Create a booking.

    Each article is priced from the billing customer's active contract when a
    slab matches, otherwise from the supplied manual rate or the article's
    base rate. The LR number is allocated from the origin branch counter.
    """
    booking = await BookingService(db, principal).create_booking(data)
    return BookingResponse.model_validate(booking)


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    db: DB,
    principal: CurrentPrincipal,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[BookingStatus] = Query(None),
    search: Optional[str] = Query(None, description="Search by LR number"),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
):
    """Get paginated list of bookings visible to the caller."""
    bookings, total = await BookingService(db, principal).list_bookings(
        page=page,
        size=size,
        status=status.value if status else None,
        search=search,
        from_date=from_date,
        to_date=to_date,
    )

    return BookingListResponse(
        items=[BookingBrief.model_validate(b) for b in bookings],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: uuid.UUID,
    db: DB,
    principal: CurrentPrincipal,
):
    """Get booking with its article lines."""
    booking = await BookingService(db, principal).get_booking(booking_id)
    return BookingResponse.model_validate(booking)


# ==================== WORKFLOW ====================

@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: uuid.UUID,
    data: BookingStatusUpdate,
    db: DB,
    principal: CurrentPrincipal,
):
    """
    Move a booking along its lifecycle.

    Every transition belongs to a workflow context: loading, unloading or
    general. expected_status is the status the client last saw; if the
    booking has moved on since, the request fails with 409.
    """
    booking = await BookingService(db, principal).update_status(booking_id, data)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/articles",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_booking_article(
    booking_id: uuid.UUID,
    data: BookingArticleCreate,
    db: DB,
    principal: CurrentPrincipal,
):
    """Add an article line and recompute the booking total."""
    booking = await BookingService(db, principal).add_article(booking_id, data)
    return BookingResponse.model_validate(booking)
