"""
Data export (right to data portability).

Builds a structured snapshot of everything the local mirror holds about a
user: the profile, the organization and the audit entries the user
performed. The export itself is audited.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from jnx_os.platform.audit import AuditAction, get_audit_logs_for_actor, record_audit_event
from jnx_os.services.identity_store import IdentityStore

logger = logging.getLogger(__name__)


class ExportedUser(BaseModel):
    user_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    created_at: Optional[str] = None
    deleted_at: Optional[str] = None


class ExportedOrganization(BaseModel):
    org_id: str
    name: str


class ExportedAuditEntry(BaseModel):
    action: str
    target: Optional[str] = None
    created_at: Optional[str] = None


class UserDataExport(BaseModel):
    exported_at: str
    user: ExportedUser
    organization: Optional[ExportedOrganization] = None
    audit_logs: List[ExportedAuditEntry]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def export_user_data(
    db: Session,
    user_id: str,
    requested_by: Optional[str] = None,
) -> Optional[UserDataExport]:
    """
    Export a user's data, including soft-deleted users.

    Returns None when no row exists. Commits the export audit entry.
    """
    store = IdentityStore(db)
    user = store.get_user(user_id, include_deleted=True)
    if user is None:
        return None

    organization = None
    if user.org_id:
        org = store.get_organization(user.org_id)
        if org is not None:
            organization = ExportedOrganization(org_id=org.id, name=org.name)

    audit_entries = [
        ExportedAuditEntry(action=log.action, target=log.target, created_at=_iso(log.created_at))
        for log in get_audit_logs_for_actor(db, user.id)
    ]

    export = UserDataExport(
        exported_at=datetime.now(timezone.utc).isoformat(),
        user=ExportedUser(
            user_id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            created_at=_iso(user.created_at),
            deleted_at=_iso(user.deleted_at),
        ),
        organization=organization,
        audit_logs=audit_entries,
    )

    record_audit_event(
        db,
        AuditAction.USER_DATA_EXPORTED,
        org_id=user.org_id,
        actor_user_id=requested_by or user.id,
        target="user",
        metadata={"exported_user_id": user.id, "audit_entries": len(audit_entries)},
    )
    db.commit()

    logger.info(
        "User data exported",
        extra={"user_id": user.id, "requested_by": requested_by or user.id},
    )
    return export


def export_filename(user_id: str) -> str:
    return f"jnx-os-export-{user_id}-{datetime.now(timezone.utc).strftime('%Y%m%d')}.json"


def export_to_json(export: UserDataExport) -> str:
    """Pretty-printed JSON document for download."""
    data: Dict[str, Any] = export.model_dump()
    return json.dumps(data, indent=2)
