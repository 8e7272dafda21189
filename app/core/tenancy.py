"""
Tenancy guard.

Decides whether a principal may perform an action on a resource. Pure
function of its inputs: no database access and no ambient session state,
so every entry point passes the caller's Principal explicitly.

Rules, in evaluation order:
    1. A write that sets a role at or above the writer's own level is denied.
    2. super_admin is allowed everywhere.
    3. The resource must belong to the principal's organization.
    4. admin / org_admin may act on any branch of their organization.
    5. operator may act on rows of their own branch, and on bookings whose
       origin or destination branch is their branch.
"""
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Union

from app.core.exceptions import AuthorizationDenied
from app.core.permissions import ORG_WIDE_ROLES, get_level_value, is_known_role
from app.models.user import UserRole


logger = logging.getLogger(__name__)


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def is_write(self) -> bool:
        return self is not Action.READ


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, built once per request from the token."""
    user_id: uuid.UUID
    role: str
    org_id: uuid.UUID
    branch_id: Optional[uuid.UUID] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN.value


@dataclass(frozen=True)
class ResourceScope:
    """Ownership coordinates of the row being touched."""
    org_id: uuid.UUID
    branch_id: Optional[uuid.UUID] = None
    from_branch_id: Optional[uuid.UUID] = None
    to_branch_id: Optional[uuid.UUID] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ResourceScope":
        return cls(
            org_id=data["org_id"],
            branch_id=data.get("branch_id"),
            from_branch_id=data.get("from_branch_id"),
            to_branch_id=data.get("to_branch_id"),
        )


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "AccessDecision":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed


ScopeLike = Union[ResourceScope, Mapping[str, Any]]


def authorize(
    principal: Principal,
    action: Action,
    resource: ScopeLike,
    new_role: Optional[str] = None,
) -> AccessDecision:
    """Return Allow or Deny(reason) for principal doing action on resource."""
    scope = resource if isinstance(resource, ResourceScope) else ResourceScope.from_mapping(resource)

    # Role escalation is checked before anything else, super_admin included
    if new_role is not None:
        if not action.is_write:
            return AccessDecision.deny("role change requires a write action")
        if not is_known_role(new_role):
            return AccessDecision.deny(f"unknown role '{new_role}'")
        if get_level_value(new_role) <= get_level_value(principal.role):
            return AccessDecision.deny(
                f"cannot grant role '{new_role}' at or above own role '{principal.role}'"
            )

    if principal.is_super_admin:
        return AccessDecision.allow()

    if scope.org_id != principal.org_id:
        return AccessDecision.deny("resource belongs to another organization")

    if principal.role in ORG_WIDE_ROLES:
        return AccessDecision.allow()

    if principal.role == UserRole.OPERATOR.value:
        if principal.branch_id is None:
            return AccessDecision.deny("operator has no home branch")
        if scope.branch_id == principal.branch_id:
            return AccessDecision.allow()
        if principal.branch_id in (scope.from_branch_id, scope.to_branch_id):
            return AccessDecision.allow()
        return AccessDecision.deny("resource belongs to another branch")

    return AccessDecision.deny(f"unknown role '{principal.role}'")


def require(
    principal: Principal,
    action: Action,
    resource: ScopeLike,
    entity: str = "Resource",
    new_role: Optional[str] = None,
) -> None:
    """
    Raise AuthorizationDenied unless authorize() allows.

    The exception renders as "<entity> not found" so denial looks the same
    as absence to the caller.
    """
    decision = authorize(principal, action, resource, new_role=new_role)
    if not decision:
        logger.warning(
            f"Denied {action.value} on {entity} for user {principal.user_id}: {decision.reason}"
        )
        raise AuthorizationDenied(entity, decision.reason)
