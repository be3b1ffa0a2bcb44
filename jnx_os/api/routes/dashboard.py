"""
Authenticated application routes (/app).

The dashboard is the first page a new user lands on, often before the
user.created webhook has arrived. The fallback sync provisions the local
user on demand; while that cannot complete the client is told to retry:

- 200: dashboard payload
- 202 setup_in_progress: retry after retry_after_seconds with attempt + 1
- 503 setup_failed: attempt reached max_attempts, contact support
- 403: the account has been deactivated
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from jnx_os.api.dependencies import get_app_settings, get_clerk_client
from jnx_os.auth.middleware import require_session
from jnx_os.auth.rbac import get_permissions
from jnx_os.auth.session import SessionContext
from jnx_os.config.settings import Settings
from jnx_os.database.session import get_db_session
from jnx_os.integrations.clerk.client import ClerkBackendClient
from jnx_os.models.user import User
from jnx_os.privacy.export import export_filename, export_to_json, export_user_data
from jnx_os.services.errors import AccountDeactivatedError, SyncPendingError
from jnx_os.services.fallback_sync import FallbackSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/app", tags=["app"])


def _ensure_local_user(
    session: SessionContext,
    db: Session,
    clerk_client: ClerkBackendClient,
) -> User:
    try:
        return FallbackSyncService(db, clerk_client).ensure_user(session)
    except AccountDeactivatedError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account has been deactivated",
        )


@router.get("/dashboard")
def dashboard(
    attempt: int = Query(1, ge=1),
    session: SessionContext = Depends(require_session),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    clerk_client: ClerkBackendClient = Depends(get_clerk_client),
):
    try:
        user = _ensure_local_user(session, db, clerk_client)
    except SyncPendingError:
        if attempt >= settings.setup_max_attempts:
            logger.error(
                "Account setup did not complete",
                extra={"clerk_user_id": session.clerk_user_id, "attempts": attempt},
            )
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "setup_failed",
                    "message": "We could not finish setting up your account.",
                    "support_email": settings.support_email,
                },
            )
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={
                "status": "setup_in_progress",
                "message": "Setting up your account...",
                "attempt": attempt,
                "max_attempts": settings.setup_max_attempts,
                "retry_after_seconds": settings.setup_retry_interval_seconds,
            },
            headers={"Retry-After": str(settings.setup_retry_interval_seconds)},
        )

    organization = user.organization
    return {
        "status": "ready",
        "user": user.to_summary(),
        "organization": organization.to_summary() if organization is not None else None,
        "permissions": get_permissions(user.role),
    }


@router.get("/privacy/export")
def export_my_data(
    session: SessionContext = Depends(require_session),
    db: Session = Depends(get_db_session),
    clerk_client: ClerkBackendClient = Depends(get_clerk_client),
):
    try:
        user = _ensure_local_user(session, db, clerk_client)
    except SyncPendingError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account setup is still in progress",
        )

    export = export_user_data(db, user.id, requested_by=user.id)
    if export is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return Response(
        content=export_to_json(export),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(user.id)}"'},
    )
