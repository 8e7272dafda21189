"""Pydantic schemas for users."""
from pydantic import BaseModel

from app.schemas.base import BaseResponseSchema
from typing import Optional
from datetime import datetime
import uuid

from app.models.user import UserRole


class UserResponse(BaseResponseSchema):
    id: uuid.UUID
    organization_id: uuid.UUID
    branch_id: Optional[uuid.UUID] = None
    email: str
    full_name: str
    role: str
    is_active: bool
    created_at: datetime


class RoleChangeRequest(BaseModel):
    role: UserRole
