from typing import Optional

from app.models.user import RoleLevel, UserRole


# Map role names to hierarchy values using RoleLevel enum for type safety
# Lower value = higher authority (SUPER_ADMIN=0 is highest)
LEVEL_ORDER = {
    UserRole.SUPER_ADMIN.value: RoleLevel.SUPER_ADMIN.value,
    UserRole.ORG_ADMIN.value: RoleLevel.ORG_ADMIN.value,
    UserRole.ADMIN.value: RoleLevel.ADMIN.value,
    UserRole.OPERATOR.value: RoleLevel.OPERATOR.value,
}

# Roles that may act on every branch of their own organization
ORG_WIDE_ROLES = frozenset({UserRole.ADMIN.value, UserRole.ORG_ADMIN.value})

# Roles allowed to manage rate contracts
CONTRACT_MANAGER_ROLES = frozenset({
    UserRole.ADMIN.value,
    UserRole.ORG_ADMIN.value,
    UserRole.SUPER_ADMIN.value,
})


def get_level_value(role: Optional[str]) -> int:
    """Convert a role name to its numeric level for comparison.

    Returns OPERATOR level as default for unknown roles.
    """
    return LEVEL_ORDER.get(str(role), RoleLevel.OPERATOR.value)


def is_known_role(role: str) -> bool:
    return role in LEVEL_ORDER


def outranks(role: str, other: str) -> bool:
    """True if role has strictly more authority than other."""
    return get_level_value(role) < get_level_value(other)
