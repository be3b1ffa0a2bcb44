"""
Tests for role-based access control.
"""

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from jnx_os.auth.rbac import (
    Permission,
    can_perform,
    get_permissions,
    has_permission,
    is_valid_role,
    require_permission,
)
from jnx_os.auth.session import SessionContext
from jnx_os.models.user import UserRole


def _request(session):
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/admin/users",
        "headers": [],
        "state": {"session": session},
    })


class TestPermissionMatrix:
    @pytest.mark.parametrize("permission", [
        Permission.MANAGE_USERS,
        Permission.MANAGE_ORGANIZATIONS,
        Permission.VIEW_AUDIT_LOGS,
        Permission.EXPORT_DATA,
    ])
    def test_admin_only_permissions(self, permission):
        assert has_permission(UserRole.ADMIN, permission) is True
        assert has_permission(UserRole.MEMBER, permission) is False

    def test_member_permissions(self):
        assert get_permissions("member") == ["edit:own_profile", "export:own_data", "view:own_data"]

    def test_string_permissions_accepted(self):
        assert has_permission("admin", "manage:users") is True

    @pytest.mark.parametrize("role", [None, "", "owner", "org:admin"])
    def test_unknown_roles_have_nothing(self, role):
        assert is_valid_role(role) is False
        assert get_permissions(role) == []
        assert has_permission(role, Permission.VIEW_OWN_DATA) is False

    def test_named_actions(self):
        assert can_perform("admin", "delete_user") is True
        assert can_perform("member", "delete_user") is False
        assert can_perform("admin", "launch_rockets") is False


class TestRequirePermission:
    def test_admin_passes(self):
        session = SessionContext(clerk_user_id="user_admin", role="admin")

        assert require_permission(Permission.MANAGE_USERS)(_request(session)) is session

    def test_member_forbidden(self):
        dependency = require_permission(Permission.MANAGE_USERS)

        with pytest.raises(HTTPException) as exc_info:
            dependency(_request(SessionContext(clerk_user_id="user_1")))

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "You do not have permission to perform this action"

    def test_anonymous_unauthorized(self):
        with pytest.raises(HTTPException) as exc_info:
            require_permission(Permission.VIEW_OWN_DATA)(_request(None))

        assert exc_info.value.status_code == 401
