"""
Data deletion (right to erasure).

Three strengths of removal, each audited:
- soft_delete_user: sets deleted_at, keeps the row (user.soft_deleted)
- anonymize_user: replaces PII with placeholders and soft-deletes
  (user.anonymized)
- hard_delete_user: physically removes the row; the audit entry is written
  first so the erasure itself stays on record (user.hard_deleted)

Each function commits its own transaction.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from jnx_os.platform.audit import AuditAction, count_audit_logs_for_actor, record_audit_event
from jnx_os.services.identity_store import IdentityStore

logger = logging.getLogger(__name__)


@dataclass
class DeletionSafetyReport:
    can_delete: bool
    warnings: List[str] = field(default_factory=list)


def soft_delete_user(db: Session, user_id: str, actor_user_id: Optional[str] = None) -> bool:
    """Returns False when the user is unknown or already deleted."""
    store = IdentityStore(db)
    user = store.get_user(user_id)
    if user is None or not store.soft_delete_user(user):
        return False

    record_audit_event(
        db,
        AuditAction.USER_SOFT_DELETED,
        org_id=user.org_id,
        actor_user_id=actor_user_id,
        target="user",
        metadata={"deleted_user_id": user.id},
    )
    db.commit()
    return True


def anonymize_user(db: Session, user_id: str, actor_user_id: Optional[str] = None) -> bool:
    store = IdentityStore(db)
    user = store.get_user(user_id, include_deleted=True)
    if user is None:
        return False

    store.anonymize_user(user)
    record_audit_event(
        db,
        AuditAction.USER_ANONYMIZED,
        org_id=user.org_id,
        actor_user_id=actor_user_id,
        target="user",
        metadata={"anonymized_user_id": user.id},
    )
    db.commit()
    logger.info("User anonymized", extra={"user_id": user.id})
    return True


def hard_delete_user(db: Session, user_id: str, actor_user_id: Optional[str] = None) -> bool:
    """
    Permanently remove a user row. Irreversible.

    The audit entry is added before the delete and both commit together.
    """
    store = IdentityStore(db)
    user = store.get_user(user_id, include_deleted=True)
    if user is None:
        return False

    record_audit_event(
        db,
        AuditAction.USER_HARD_DELETED,
        org_id=user.org_id,
        actor_user_id=actor_user_id,
        target="user",
        metadata={"deleted_user_id": user.id, "warning": "User data permanently deleted"},
    )
    try:
        store.hard_delete_user(user)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return True


def check_deletion_safety(db: Session, user_id: str) -> DeletionSafetyReport:
    store = IdentityStore(db)
    user = store.get_user(user_id, include_deleted=True)
    if user is None:
        return DeletionSafetyReport(can_delete=False, warnings=["User not found"])

    warnings: List[str] = []
    if user.org_id:
        warnings.append("User is part of an organization. Consider removing from org first.")
    if user.is_admin:
        warnings.append("User has admin role. Ensure another admin exists before deletion.")

    entries = count_audit_logs_for_actor(db, user.id)
    if entries:
        warnings.append(f"User has {entries} audit log entries. Consider retention policy.")

    return DeletionSafetyReport(can_delete=True, warnings=warnings)
