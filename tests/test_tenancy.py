import uuid

import pytest
from sqlalchemy import select

from app.core.exceptions import AuthorizationDenied, NotFound
from app.core.permissions import get_level_value, outranks
from app.core.tenancy import Action, Principal, ResourceScope, authorize, require
from app.middleware.scope_filter import ScopeFilter
from app.models.booking import Booking


ORG_A = uuid.uuid4()
ORG_B = uuid.uuid4()
MUM = uuid.uuid4()
DEL = uuid.uuid4()
BLR = uuid.uuid4()


def make_principal(role, org_id=ORG_A, branch_id=MUM):
    return Principal(user_id=uuid.uuid4(), role=role, org_id=org_id, branch_id=branch_id)


class TestRoleLevels:

    def test_lower_level_means_more_authority(self):
        assert get_level_value("super_admin") < get_level_value("org_admin")
        assert get_level_value("org_admin") < get_level_value("admin")
        assert get_level_value("admin") < get_level_value("operator")

    def test_outranks_is_strict(self):
        assert outranks("admin", "operator")
        assert not outranks("admin", "admin")
        assert not outranks("operator", "org_admin")


class TestAuthorize:

    def test_super_admin_allowed_in_any_org(self):
        principal = make_principal("super_admin")
        assert authorize(principal, Action.UPDATE, {"org_id": ORG_B, "branch_id": uuid.uuid4()})

    def test_cross_org_denied_for_admin(self):
        principal = make_principal("admin")
        decision = authorize(principal, Action.READ, {"org_id": ORG_B, "branch_id": MUM})
        assert not decision
        assert "another organization" in decision.reason

    @pytest.mark.parametrize("role", ["admin", "org_admin"])
    def test_org_wide_roles_reach_every_branch(self, role):
        principal = make_principal(role)
        assert authorize(principal, Action.UPDATE, {"org_id": ORG_A, "branch_id": BLR})

    def test_operator_limited_to_own_branch(self):
        principal = make_principal("operator", branch_id=MUM)
        assert authorize(principal, Action.READ, {"org_id": ORG_A, "branch_id": MUM})
        assert not authorize(principal, Action.READ, {"org_id": ORG_A, "branch_id": BLR})

    def test_operator_sees_bookings_arriving_at_their_branch(self):
        principal = make_principal("operator", branch_id=DEL)
        scope = ResourceScope(org_id=ORG_A, branch_id=MUM, from_branch_id=MUM, to_branch_id=DEL)
        assert authorize(principal, Action.UPDATE, scope)

    def test_operator_sees_bookings_leaving_their_branch(self):
        principal = make_principal("operator", branch_id=DEL)
        scope = {"org_id": ORG_A, "branch_id": MUM, "from_branch_id": DEL, "to_branch_id": BLR}
        assert authorize(principal, Action.READ, scope)

    def test_operator_without_branch_denied(self):
        principal = make_principal("operator", branch_id=None)
        assert not authorize(principal, Action.READ, {"org_id": ORG_A, "branch_id": MUM})

    def test_unknown_role_denied(self):
        principal = make_principal("auditor")
        assert not authorize(principal, Action.READ, {"org_id": ORG_A, "branch_id": MUM})


class TestRoleEscalation:

    def test_operator_cannot_promote_self_to_super_admin(self):
        principal = make_principal("operator")
        decision = authorize(
            principal, Action.UPDATE, {"org_id": ORG_A, "branch_id": MUM}, new_role="super_admin"
        )
        assert not decision

    def test_super_admin_cannot_mint_super_admin(self):
        principal = make_principal("super_admin")
        decision = authorize(
            principal, Action.UPDATE, {"org_id": ORG_A, "branch_id": MUM}, new_role="super_admin"
        )
        assert not decision
        assert "at or above" in decision.reason

    def test_admin_cannot_grant_own_level(self):
        principal = make_principal("admin")
        assert not authorize(
            principal, Action.UPDATE, {"org_id": ORG_A, "branch_id": MUM}, new_role="admin"
        )

    def test_org_admin_can_grant_admin(self):
        principal = make_principal("org_admin")
        assert authorize(
            principal, Action.UPDATE, {"org_id": ORG_A, "branch_id": DEL}, new_role="admin"
        )

    def test_role_change_still_needs_scope(self):
        principal = make_principal("org_admin")
        assert not authorize(
            principal, Action.UPDATE, {"org_id": ORG_B, "branch_id": DEL}, new_role="operator"
        )

    def test_unknown_role_cannot_be_granted(self):
        principal = make_principal("super_admin")
        assert not authorize(
            principal, Action.UPDATE, {"org_id": ORG_A, "branch_id": MUM}, new_role="root"
        )


class TestRequire:

    def test_denial_looks_like_not_found(self):
        principal = make_principal("admin")
        with pytest.raises(NotFound) as exc_info:
            require(principal, Action.READ, {"org_id": ORG_B, "branch_id": MUM}, entity="Booking")

        assert isinstance(exc_info.value, AuthorizationDenied)
        assert exc_info.value.message == "Booking not found"
        assert exc_info.value.status_code == 404
        assert exc_info.value.error_code == "NOT_FOUND"

    def test_allowed_returns_none(self):
        principal = make_principal("operator")
        assert require(principal, Action.READ, {"org_id": ORG_A, "branch_id": MUM}) is None


class TestScopeFilter:

    def _sql(self, principal):
        query = ScopeFilter(principal).apply(select(Booking), Booking)
        return str(query.whereclause)

    def test_super_admin_unfiltered(self):
        principal = make_principal("super_admin")
        query = ScopeFilter(principal).apply(select(Booking), Booking)
        assert not ScopeFilter(principal).should_filter()
        assert query.whereclause is None

    def test_admin_filtered_on_org_only(self):
        sql = self._sql(make_principal("admin"))
        assert "bookings.organization_id" in sql
        assert "from_branch_id" not in sql

    def test_operator_filtered_on_branch_columns(self):
        sql = self._sql(make_principal("operator"))
        assert "bookings.organization_id" in sql
        assert "bookings.branch_id" in sql
        assert "bookings.from_branch_id" in sql
        assert "bookings.to_branch_id" in sql
