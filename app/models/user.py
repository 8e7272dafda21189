import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType

if TYPE_CHECKING:
    from app.models.organization import Branch


class UserRole(str, Enum):
    """Roles a user can hold. Stored as the lowercase value."""
    OPERATOR = "operator"
    ADMIN = "admin"
    ORG_ADMIN = "org_admin"
    SUPER_ADMIN = "super_admin"


class RoleLevel(int, Enum):
    """
    Role hierarchy levels.
    Lower number = Higher authority.
    SUPER_ADMIN (0) sees every organization.
    """
    SUPER_ADMIN = 0
    ORG_ADMIN = 1
    ADMIN = 2
    OPERATOR = 3


class User(Base):
    """
    User model for authentication and authorization.
    A user belongs to one organization and has a home branch.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20),
        default=UserRole.OPERATOR.value,
        nullable=False,
        comment="operator, admin, org_admin, super_admin"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    branch: Mapped[Optional["Branch"]] = relationship("Branch", back_populates="users")

    def __repr__(self) -> str:
        return f"<User(email='{self.email}', role='{self.role}')>"
