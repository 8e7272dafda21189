"""
Scope filtering for list queries.
Narrows any SQLAlchemy select to the rows the caller's principal may see,
mirroring the tenancy guard so lists never leak rows a single-row read
would deny.
"""

from sqlalchemy import false, or_

from app.core.permissions import ORG_WIDE_ROLES
from app.core.tenancy import Principal
from app.models.user import UserRole


class ScopeFilter:
    """
    Organization/branch filter applied before a query reaches the database.

    SUPER_ADMIN sees every organization.
    ADMIN and ORG_ADMIN see every branch of their organization.
    OPERATOR sees rows of their own branch, plus bookings that start or
    end at it.
    """

    def __init__(self, principal: Principal):
        self.principal = principal

    def should_filter(self) -> bool:
        return not self.principal.is_super_admin

    def apply(self, query, model):
        """
        Apply the caller's scope to a SQLAlchemy query.

        Args:
            query: SQLAlchemy select statement
            model: Mapped class whose organization_id / branch_id columns
                are filtered on

        Returns:
            Modified query with the scope filter applied
        """
        if not self.should_filter():
            return query

        query = query.where(model.organization_id == self.principal.org_id)

        if self.principal.role in ORG_WIDE_ROLES:
            return query

        if self.principal.role != UserRole.OPERATOR.value or self.principal.branch_id is None:
            # Unknown role or branchless operator - match nothing
            return query.where(false())

        branch_id = self.principal.branch_id
        conditions = [model.branch_id == branch_id]
        if hasattr(model, "from_branch_id"):
            conditions.append(model.from_branch_id == branch_id)
        if hasattr(model, "to_branch_id"):
            conditions.append(model.to_branch_id == branch_id)

        return query.where(or_(*conditions))
