"""
Role-based access control for JNX-OS.

Roles are stored on the local user mirror and in Clerk public_metadata.role.
Permission checks MUST go through this module; UI gating is UX only.

Usage:
    @router.get("/admin/users")
    def list_users(session: SessionContext = Depends(require_permission(Permission.MANAGE_USERS))):
        ...
"""

import logging
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from fastapi import HTTPException, Request, status

from jnx_os.auth.middleware import require_session
from jnx_os.auth.session import SessionContext
from jnx_os.models.user import UserRole

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    """
    All permissions in the system.

    Naming convention: action:resource
    """
    MANAGE_USERS = "manage:users"
    MANAGE_ORGANIZATIONS = "manage:organizations"
    MANAGE_BILLING = "manage:billing"
    VIEW_ANALYTICS = "view:analytics"
    MANAGE_SETTINGS = "manage:settings"
    VIEW_AUDIT_LOGS = "view:audit_logs"
    MANAGE_FEATURE_FLAGS = "manage:feature_flags"
    EXPORT_DATA = "export:data"

    VIEW_OWN_DATA = "view:own_data"
    EDIT_OWN_PROFILE = "edit:own_profile"
    EXPORT_OWN_DATA = "export:own_data"


ROLE_NAMES: Dict[UserRole, str] = {
    UserRole.ADMIN: "Administrator",
    UserRole.MEMBER: "Member",
}

ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.ADMIN: frozenset([
        Permission.MANAGE_USERS,
        Permission.MANAGE_ORGANIZATIONS,
        Permission.MANAGE_BILLING,
        Permission.VIEW_ANALYTICS,
        Permission.MANAGE_SETTINGS,
        Permission.VIEW_AUDIT_LOGS,
        Permission.MANAGE_FEATURE_FLAGS,
        Permission.EXPORT_DATA,
    ]),
    UserRole.MEMBER: frozenset([
        Permission.VIEW_OWN_DATA,
        Permission.EDIT_OWN_PROFILE,
        Permission.EXPORT_OWN_DATA,
    ]),
}

# Named actions used by the admin console, mapped to the permission they need
ACTION_PERMISSIONS: Dict[str, Permission] = {
    "view_users": Permission.MANAGE_USERS,
    "edit_user": Permission.MANAGE_USERS,
    "delete_user": Permission.MANAGE_USERS,
    "view_organizations": Permission.MANAGE_ORGANIZATIONS,
    "edit_organization": Permission.MANAGE_ORGANIZATIONS,
    "view_billing": Permission.MANAGE_BILLING,
    "edit_billing": Permission.MANAGE_BILLING,
    "view_analytics": Permission.VIEW_ANALYTICS,
    "manage_settings": Permission.MANAGE_SETTINGS,
    "view_audit_logs": Permission.VIEW_AUDIT_LOGS,
    "manage_feature_flags": Permission.MANAGE_FEATURE_FLAGS,
    "export_all_data": Permission.EXPORT_DATA,
}


def is_valid_role(role: Optional[str]) -> bool:
    return role in (UserRole.ADMIN.value, UserRole.MEMBER.value)


def _coerce_role(role: Union[UserRole, str, None]) -> Optional[UserRole]:
    if isinstance(role, UserRole):
        return role
    if is_valid_role(role):
        return UserRole(role)
    return None


def get_permissions(role: Union[UserRole, str, None]) -> List[str]:
    """Permission strings granted to a role; empty for unknown roles."""
    resolved = _coerce_role(role)
    if resolved is None:
        return []
    return sorted(p.value for p in ROLE_PERMISSIONS[resolved])


def has_permission(role: Union[UserRole, str, None], permission: Union[Permission, str]) -> bool:
    resolved = _coerce_role(role)
    if resolved is None:
        return False
    value = permission.value if isinstance(permission, Permission) else permission
    return any(p.value == value for p in ROLE_PERMISSIONS[resolved])


def can_perform(role: Union[UserRole, str, None], action: str) -> bool:
    """Check a named action; unknown actions are denied."""
    permission = ACTION_PERMISSIONS.get(action)
    if permission is None:
        return False
    return has_permission(role, permission)


def require_permission(permission: Permission) -> Callable[[Request], SessionContext]:
    """
    FastAPI dependency factory checking the session's role claim.

    Raises HTTPException 401 when anonymous, 403 when the role lacks the
    permission.
    """

    def dependency(request: Request) -> SessionContext:
        session = require_session(request)
        if not has_permission(session.role, permission):
            logger.warning(
                "Permission check failed",
                extra={
                    "clerk_user_id": session.clerk_user_id,
                    "required_permission": permission.value,
                    "role": session.role,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        return session

    return dependency
