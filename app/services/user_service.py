"""User administration: profile lookup and role changes."""
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationDenied, NotFound
from app.core.permissions import outranks
from app.core.tenancy import Action, Principal, require
from app.models.user import User
from app.services.audit_service import AuditService


logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: AsyncSession, principal: Principal):
        self.db = db
        self.principal = principal

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFound("User")
        require(
            self.principal, Action.READ,
            {"org_id": user.organization_id, "branch_id": user.branch_id},
            entity="User",
        )
        return user

    async def change_role(self, user_id: uuid.UUID, new_role: str) -> User:
        """
        Change a user's role.

        Nobody can grant a role at or above their own, and that includes
        changing their own role. Denials surface as "User not found".
        """
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFound("User")
        require(
            self.principal, Action.UPDATE,
            {"org_id": user.organization_id, "branch_id": user.branch_id},
            entity="User",
            new_role=new_role,
        )
        if user.id != self.principal.user_id and not outranks(self.principal.role, user.role):
            logger.warning(
                f"User {self.principal.user_id} tried to change role of peer or superior {user.id}"
            )
            raise AuthorizationDenied("User", "target user is not below the writer's role")

        old_role = user.role
        user.role = new_role
        await self.db.flush()

        await AuditService(self.db).log(
            action="ROLE_CHANGE",
            entity_type="USER",
            entity_id=user.id,
            user_id=self.principal.user_id,
            organization_id=user.organization_id,
            old_values={"role": old_role},
            new_values={"role": new_role},
            description=f"Changed role of {user.email} from {old_role} to {new_role}",
        )
        logger.info(f"User {user.email}: role {old_role} -> {new_role}")
        return user
