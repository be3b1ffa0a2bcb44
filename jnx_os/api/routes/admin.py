"""
Admin console API (/admin).

The access gate already keeps non-admins out of /admin; each endpoint also
checks the permission it needs so the console stays closed if the gate is
misconfigured.

Role changes are pushed to Clerk public_metadata first, then mirrored
locally, so the next session token carries the new role claim.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from jnx_os.api.dependencies import get_clerk_client
from jnx_os.auth.rbac import Permission, is_valid_role, require_permission
from jnx_os.auth.session import SessionContext
from jnx_os.database.session import get_db_session
from jnx_os.integrations.clerk.client import ClerkBackendClient
from jnx_os.integrations.clerk.exceptions import (
    IdentityProviderError,
    IdentityProviderUnavailableError,
)
from jnx_os.models.user import User
from jnx_os.platform.audit import AuditAction, get_recent_audit_logs, record_audit_event
from jnx_os.privacy import deletion
from jnx_os.privacy.export import export_user_data
from jnx_os.services.errors import ValidationError
from jnx_os.services.identity_store import IdentityStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

manage_users = require_permission(Permission.MANAGE_USERS)
manage_organizations = require_permission(Permission.MANAGE_ORGANIZATIONS)
view_audit_logs = require_permission(Permission.VIEW_AUDIT_LOGS)
export_data = require_permission(Permission.EXPORT_DATA)


class RoleChangeRequest(BaseModel):
    role: str


def _actor_id(db: Session, session: SessionContext) -> Optional[str]:
    """Local id of the acting admin, when the admin has a mirror row."""
    actor = IdentityStore(db).get_user_by_clerk_id(session.clerk_user_id)
    return actor.id if actor is not None else None


def _load_user(db: Session, user_id: str) -> User:
    user = IdentityStore(db).get_user(user_id, include_deleted=True)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/users")
def list_users(
    include_deleted: bool = Query(False),
    session: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db_session),
):
    users = IdentityStore(db).list_users(include_deleted=include_deleted)
    return {"users": [user.to_summary() for user in users], "total": len(users)}


@router.get("/organizations")
def list_organizations(
    session: SessionContext = Depends(manage_organizations),
    db: Session = Depends(get_db_session),
):
    store = IdentityStore(db)
    organizations = []
    for org in store.list_organizations():
        summary = org.to_summary()
        summary["member_count"] = store.count_members(org.id)
        organizations.append(summary)
    return {"organizations": organizations, "total": len(organizations)}


@router.get("/audit-logs")
def list_audit_logs(
    limit: int = Query(50, ge=1, le=200),
    session: SessionContext = Depends(view_audit_logs),
    db: Session = Depends(get_db_session),
):
    return {"audit_logs": [log.to_summary() for log in get_recent_audit_logs(db, limit=limit)]}


@router.patch("/users/{user_id}/role")
def change_user_role(
    user_id: str,
    body: RoleChangeRequest,
    session: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db_session),
    clerk_client: ClerkBackendClient = Depends(get_clerk_client),
):
    if not is_valid_role(body.role):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")

    user = _load_user(db, user_id)
    previous_role = user.role
    if previous_role == body.role:
        return user.to_summary()

    try:
        clerk_client.update_public_metadata(user.clerk_user_id, {"role": body.role})
    except IdentityProviderUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Identity provider unavailable",
        )
    except IdentityProviderError as e:
        logger.error(
            "Clerk rejected role update",
            extra={"user_id": user.id, "status_code": e.status_code, "error_code": e.code},
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Role update failed")

    IdentityStore(db).set_user_role(user, body.role)
    record_audit_event(
        db,
        AuditAction.USER_ROLE_CHANGED,
        org_id=user.org_id,
        actor_user_id=_actor_id(db, session),
        target="user",
        metadata={"user_id": user.id, "previous_role": previous_role, "new_role": body.role},
    )
    db.commit()

    logger.info(
        "User role changed",
        extra={"user_id": user.id, "previous_role": previous_role, "new_role": body.role},
    )
    return user.to_summary()


@router.post("/users/{user_id}/restore")
def restore_user(
    user_id: str,
    session: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db_session),
):
    user = _load_user(db, user_id)
    try:
        restored = IdentityStore(db).restore_user(user)
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Another active user has this email address",
        )
    if not restored:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is not deleted")

    record_audit_event(
        db,
        AuditAction.USER_RESTORED,
        org_id=user.org_id,
        actor_user_id=_actor_id(db, session),
        target="user",
        metadata={"restored_user_id": user.id},
    )
    db.commit()
    return user.to_summary()


@router.get("/users/{user_id}/export")
def export_user(
    user_id: str,
    session: SessionContext = Depends(export_data),
    db: Session = Depends(get_db_session),
):
    export = export_user_data(db, user_id, requested_by=_actor_id(db, session))
    if export is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return export.model_dump()


@router.get("/users/{user_id}/deletion-safety")
def deletion_safety(
    user_id: str,
    session: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db_session),
):
    report = deletion.check_deletion_safety(db, user_id)
    return {"can_delete": report.can_delete, "warnings": report.warnings}


@router.post("/users/{user_id}/soft-delete")
def soft_delete_user(
    user_id: str,
    session: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db_session),
):
    _load_user(db, user_id)
    if not deletion.soft_delete_user(db, user_id, actor_user_id=_actor_id(db, session)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already deleted")
    return {"deleted": True, "mode": "soft"}


@router.post("/users/{user_id}/anonymize")
def anonymize_user(
    user_id: str,
    session: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db_session),
):
    if not deletion.anonymize_user(db, user_id, actor_user_id=_actor_id(db, session)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return {"deleted": True, "mode": "anonymize"}


@router.delete("/users/{user_id}")
def hard_delete_user(
    user_id: str,
    session: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db_session),
):
    actor_id = _actor_id(db, session)
    if actor_id is not None and actor_id == user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot permanently delete their own account",
        )
    if not deletion.hard_delete_user(db, user_id, actor_user_id=actor_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return {"deleted": True, "mode": "hard"}
