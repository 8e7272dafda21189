from typing import Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.security import verify_password, create_access_token
from app.models.user import User


logger = logging.getLogger(__name__)


class AuthService:
    """Authentication service for login and token handling."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def authenticate_user(
        self,
        email: str,
        password: str
    ) -> Optional[User]:
        """
        Authenticate a user by email and password.

        Args:
            email: User's email address
            password: Plain text password

        Returns:
            User object if authentication successful, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        user = result.scalar_one_or_none()

        if user is None or not user.is_active:
            logger.info(f"Login rejected for {email}: unknown or inactive user")
            return None

        if not verify_password(password, user.password_hash):
            logger.info(f"Login rejected for {email}: bad password")
            return None

        return user

    def create_token(self, user: User) -> Tuple[str, int]:
        """
        Create an access token for a user.

        Returns:
            Tuple of (access_token, expires_in_seconds)
        """
        access_token = create_access_token(
            subject=user.id,
            additional_claims={
                "email": user.email,
                "role": user.role,
                "org_id": str(user.organization_id),
            },
        )
        return access_token, settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
