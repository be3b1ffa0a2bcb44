"""
System health report.

Summarizes database connectivity and schema readiness, the identity
provider as seen from the current request, the caller's local user and
organization, the active user count and the most recent audit entries.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jnx_os.auth.session import SessionContext
from jnx_os.config.settings import Settings
from jnx_os.platform.audit import get_recent_audit_logs
from jnx_os.services.identity_store import IdentityStore

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("users", "organizations", "audit_logs", "system_events")

STATUS_CONNECTED = "connected"
STATUS_DEGRADED = "degraded"
STATUS_DISCONNECTED = "disconnected"


def check_database(db: Session) -> Dict[str, Any]:
    """
    Probe the database.

    connected: reachable and every identity table exists
    degraded: reachable but tables are missing
    disconnected: the connectivity query failed
    """
    try:
        db.execute(text("SELECT 1"))
        existing = set(inspect(db.connection()).get_table_names())
    except SQLAlchemyError as e:
        logger.error("Database health check failed", extra={"error": type(e).__name__})
        return {"status": STATUS_DISCONNECTED, "message": "Database unreachable"}

    missing = [table for table in REQUIRED_TABLES if table not in existing]
    if missing:
        return {
            "status": STATUS_DEGRADED,
            "message": "Identity schema incomplete",
            "missing_tables": missing,
        }
    return {"status": STATUS_CONNECTED, "message": "Database reachable"}


def disconnected_report(message: str = "Health check failed") -> Dict[str, Any]:
    return {
        "connection": {"status": STATUS_DISCONNECTED, "message": message},
        "identity_provider": None,
        "current_user": None,
        "current_org": None,
        "active_users": 0,
        "recent_audit_logs": [],
    }


class HealthService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.store = IdentityStore(db)

    def build_report(self, session: Optional[SessionContext]) -> Dict[str, Any]:
        connection = check_database(self.db)
        report: Dict[str, Any] = {
            "connection": connection,
            "identity_provider": {
                "configured": self.settings.auth_configured,
                "status": "authenticated" if session is not None else "anonymous",
            },
            "current_user": None,
            "current_org": None,
            "active_users": 0,
            "recent_audit_logs": [],
        }
        if connection["status"] != STATUS_CONNECTED:
            return report

        if session is not None:
            user = self.store.get_user_by_clerk_id(session.clerk_user_id)
            if user is not None:
                report["current_user"] = {
                    "user_id": user.id,
                    "email": user.email,
                    "role": user.role,
                    "org_id": user.org_id,
                }
                org = self.store.get_organization(user.org_id) if user.org_id else None
                if org is not None:
                    report["current_org"] = {"org_id": org.id, "name": org.name}

        report["active_users"] = self.store.count_active_users()
        report["recent_audit_logs"] = self._recent_logs()
        return report

    def _recent_logs(self) -> List[Dict[str, Any]]:
        return [
            {
                "action": log.action,
                "target": log.target,
                "created_at": log.created_at.isoformat() if log.created_at else None,
            }
            for log in get_recent_audit_logs(self.db, limit=10)
        ]
