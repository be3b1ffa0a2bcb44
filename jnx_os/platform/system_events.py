"""
Operational system events.

System events record what the service itself did (webhook deliveries
processed, rejected or failed) as opposed to audit rows, which record what
happened to an identity. They are written after the caller's unit of work
has committed or rolled back, in their own transaction, so a failed delivery
still leaves a trace.
"""

import json
import logging
from enum import Enum
from typing import Optional

from sqlalchemy import Column, String, Text, DateTime, Index
from sqlalchemy.orm import Session

from jnx_os.db_base import Base
from jnx_os.models.base import JSONType, Metadata, generate_uuid, utcnow
from jnx_os.privacy.redaction import redact_object, redact_text

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("audit.fallback")


class Severity(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class SystemEventType:
    """Event type tags."""
    WEBHOOK_PROCESSED = "webhook.processed"
    WEBHOOK_REJECTED = "webhook.rejected"
    WEBHOOK_ERROR = "webhook.error"
    WEBHOOK_SKIPPED = "webhook.skipped"
    ORPHANED_ORGANIZATION = "provisioning.orphaned_organization"
    FALLBACK_SYNC_FAILED = "fallback_sync.failed"


class SystemEvent(Base):
    """Append-only operational event."""

    __tablename__ = "system_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    event_type = Column(String(100), nullable=False, index=True)
    severity = Column(String(10), nullable=False, default=Severity.INFO.value)
    message = Column(Text, nullable=False)
    event_metadata = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_system_events_created_at", "created_at"),
        Index("ix_system_events_severity", "severity"),
    )


def log_system_event(
    db: Session,
    event_type: str,
    message: str,
    severity: Severity = Severity.INFO,
    metadata: Optional[Metadata] = None,
    commit: bool = True,
) -> Optional[SystemEvent]:
    """
    Persist a system event.

    By default the event is committed at once, so the session must have no
    pending work. With commit=False the row joins the caller's transaction
    instead and is only flushed. Never raises; a failed write is sent to the
    fallback logger.
    """
    safe_metadata = redact_object(metadata or {})
    safe_message = redact_text(message)
    try:
        system_event = SystemEvent(
            event_type=event_type,
            severity=severity.value,
            message=safe_message,
            event_metadata=safe_metadata,
        )
        if commit:
            db.add(system_event)
            db.commit()
        else:
            with db.begin_nested():
                db.add(system_event)
        return system_event
    except Exception as e:
        if commit:
            try:
                db.rollback()
            except Exception:
                logger.exception("Rollback failed after system event write error")
        fallback_logger.error(
            "System event fallback",
            extra={
                "system_event": json.dumps(
                    {
                        "event_type": event_type,
                        "severity": severity.value,
                        "message": safe_message,
                        "metadata": safe_metadata,
                        "fallback_reason": str(e),
                    },
                    default=str,
                )
            },
        )
        return None
