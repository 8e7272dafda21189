from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Access Control
    auth,
    users,
    # Freight
    bookings,
    rate_contracts,
)


api_router = APIRouter(prefix="/api/v1")

# Access Control
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])

# Freight
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])
api_router.include_router(rate_contracts.router, prefix="/rates", tags=["Rate Contracts"])
