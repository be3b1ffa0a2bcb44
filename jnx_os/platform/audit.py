"""
Audit logging for JNX-OS.

CRITICAL SECURITY REQUIREMENTS:
- Audit logs MUST be append-only (no UPDATE/DELETE)
- Every identity mutation (webhook, signup, admin, privacy) MUST write an audit event
- Metadata MUST be redacted before persistence
- Failed logging attempts MUST fall back to secondary logger

Audit rows join the caller's unit of work: write_audit_log_sync adds the row
inside a SAVEPOINT and never commits, so the row commits or rolls back
together with the mutation it describes. A failed insert only unwinds the
savepoint and is written to the fallback logger instead.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Union

from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.orm import Session

from jnx_os.db_base import Base
from jnx_os.models.base import JSONType, Metadata, generate_uuid, utcnow
from jnx_os.privacy.redaction import redact_object

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("audit.fallback")


class AuditAction(str, Enum):
    """
    Enumeration of all auditable actions.

    Add new actions here as features are developed.
    """
    # User lifecycle
    USER_SIGNUP = "user.signup"
    USER_UPDATED = "user.updated"
    USER_DELETED = "user.deleted"
    USER_RESTORED = "user.restored"
    USER_ROLE_CHANGED = "user.role_changed"

    # Organization events
    ORGANIZATION_CREATED = "organization.created"
    ORGANIZATION_UPDATED = "organization.updated"
    ORGANIZATION_MEMBER_ADDED = "organization.member_added"
    ORGANIZATION_MEMBER_UPDATED = "organization.member_updated"

    # Auth events
    AUTH_LOGIN = "auth.login"

    # Privacy events
    USER_DATA_EXPORTED = "user.data_exported"
    USER_SOFT_DELETED = "user.soft_deleted"
    USER_HARD_DELETED = "user.hard_deleted"
    USER_ANONYMIZED = "user.anonymized"


class AuditLog(Base):
    """
    Audit log database model.

    CRITICAL: This table is append-only. No UPDATE or DELETE operations are allowed.
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    org_id = Column(String(36), nullable=True, index=True)
    actor_user_id = Column(String(36), nullable=True, index=True)  # NULL for system actions
    action = Column(String(100), nullable=False, index=True)
    target = Column(String(100), nullable=True)
    event_metadata = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_audit_logs_created_at", "created_at"),
        Index("ix_audit_logs_org_created", "org_id", "created_at"),
    )

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "actor_user_id": self.actor_user_id,
            "action": self.action,
            "target": self.target,
            "metadata": self.event_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class AuditEvent:
    """
    Audit event data structure.

    Use this to construct audit events before writing to the database.
    PII in metadata is automatically redacted before persistence.
    """
    action: Union[AuditAction, str]
    org_id: Optional[str] = None
    actor_user_id: Optional[str] = None
    target: Optional[str] = None
    metadata: Metadata = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def action_value(self) -> str:
        return self.action.value if isinstance(self.action, AuditAction) else self.action

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for database insertion with PII redaction."""
        return {
            "org_id": self.org_id,
            "actor_user_id": self.actor_user_id,
            "action": self.action_value,
            "target": self.target,
            "event_metadata": redact_object(self.metadata),
            "created_at": self.timestamp,
        }


def write_audit_log_sync(db: Session, event: AuditEvent) -> Optional[AuditLog]:
    """
    Add an audit event to the current transaction.

    CRITICAL: This is an append-only operation. The caller owns the commit.
    On failure, writes to fallback logger and returns None (never crashes
    the mutation being audited).

    Returns:
        The pending AuditLog record, or None if fallback was used
    """
    audit_id = str(uuid.uuid4())
    try:
        with db.begin_nested():
            audit_log = AuditLog(id=audit_id, **event.to_dict())
            db.add(audit_log)
    except Exception as e:
        _write_fallback_log(event, audit_id, str(e))
        return None

    logger.info(
        "Audit event recorded",
        extra={
            "audit_id": audit_id,
            "org_id": event.org_id,
            "actor_user_id": event.actor_user_id,
            "action": event.action_value,
        },
    )
    return audit_log


def _write_fallback_log(event: AuditEvent, audit_id: str, error_reason: str) -> None:
    """Write audit event to fallback logger when primary DB fails."""
    fallback_entry = {
        "event_id": audit_id,
        "org_id": event.org_id,
        "actor_user_id": event.actor_user_id,
        "action": event.action_value,
        "target": event.target,
        "timestamp": event.timestamp.isoformat(),
        "metadata": redact_object(event.metadata),
        "fallback_reason": error_reason,
    }
    fallback_logger.error(
        "Audit log fallback",
        extra={"audit_entry": json.dumps(fallback_entry, default=str)},
    )


def record_audit_event(
    db: Session,
    action: Union[AuditAction, str],
    org_id: Optional[str] = None,
    actor_user_id: Optional[str] = None,
    target: Optional[str] = None,
    metadata: Optional[Metadata] = None,
) -> Optional[AuditLog]:
    """Shorthand for building an AuditEvent and writing it."""
    return write_audit_log_sync(
        db,
        AuditEvent(
            action=action,
            org_id=org_id,
            actor_user_id=actor_user_id,
            target=target,
            metadata=metadata or {},
        ),
    )


def get_recent_audit_logs(db: Session, limit: int = 10) -> List[AuditLog]:
    """Most recent audit rows across all organizations, newest first."""
    return (
        db.query(AuditLog)
        .order_by(AuditLog.created_at.desc())
        .limit(limit)
        .all()
    )


def get_audit_logs_for_actor(db: Session, actor_user_id: str) -> List[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.actor_user_id == actor_user_id)
        .order_by(AuditLog.created_at.desc())
        .all()
    )


def count_audit_logs_for_actor(db: Session, actor_user_id: str) -> int:
    return db.query(AuditLog).filter(AuditLog.actor_user_id == actor_user_id).count()
