import uuid

from fastapi import APIRouter

from app.api.deps import DB, CurrentUser, CurrentPrincipal
from app.schemas.user import RoleChangeRequest, UserResponse
from app.services.user_service import UserService


router = APIRouter(tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser):
    """Get the authenticated user's profile."""
    return UserResponse.model_validate(current_user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    db: DB,
    principal: CurrentPrincipal,
):
    user = await UserService(db, principal).get_user(user_id)
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/role", response_model=UserResponse)
async def change_user_role(
    user_id: uuid.UUID,
    data: RoleChangeRequest,
    db: DB,
    principal: CurrentPrincipal,
):
    """
    Change a user's role.

    Callers can only grant roles strictly below their own, and only to
    users they outrank.
    """
    user = await UserService(db, principal).change_role(user_id, data.role.value)
    return UserResponse.model_validate(user)
