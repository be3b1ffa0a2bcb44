"""
System health endpoint.

Reports database connectivity, the identity provider as seen by this
request, and a small snapshot of the identity tables. Never requires
authentication; an authenticated caller additionally sees their own
user and organization.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from jnx_os.api.dependencies import get_app_settings
from jnx_os.auth.middleware import get_session_context
from jnx_os.auth.session import SessionContext
from jnx_os.config.settings import Settings
from jnx_os.database.session import get_optional_db_session
from jnx_os.services.health_service import HealthService, disconnected_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def system_health(
    settings: Settings = Depends(get_app_settings),
    db: Optional[Session] = Depends(get_optional_db_session),
    session: Optional[SessionContext] = Depends(get_session_context),
):
    if db is None:
        logger.error("System health check without a database", extra={"reason": "database_not_configured"})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=disconnected_report("Database not configured"),
        )
    try:
        return HealthService(db, settings).build_report(session)
    except Exception:
        logger.exception("System health check failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=disconnected_report(),
        )
