"""
Legacy email/password endpoints.

Kept for clients that predate the hosted Clerk sign-in widgets. Both
endpoints delegate credentials entirely to the Clerk Backend API; nothing
password-related is stored or logged locally.

- POST /api/auth/signup: create the Clerk user, provision the local user
  and its personal organization (audit user.signup)
- POST /api/auth/login: verify the password with Clerk, issue a sign-in
  token, make sure the local mirror exists (audit auth.login)

Responses to the caller stay generic so they do not reveal whether an
email address is registered.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jnx_os.api.dependencies import get_clerk_client
from jnx_os.auth.session import SessionContext
from jnx_os.database.session import get_db_session
from jnx_os.integrations.clerk.client import ClerkBackendClient
from jnx_os.integrations.clerk.exceptions import (
    IdentityProviderError,
    IdentityProviderUnavailableError,
    InvalidCredentialsError,
)
from jnx_os.platform.audit import AuditAction, record_audit_event
from jnx_os.security.rate_limit import rate_limit
from jnx_os.services.errors import AccountDeactivatedError, SyncPendingError, ValidationError
from jnx_os.services.fallback_sync import FallbackSyncService
from jnx_os.services.identity_store import IdentityStore
from jnx_os.services.provisioning import personal_organization_name, provision_user

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
    dependencies=[Depends(rate_limit("auth"))],
)

INVALID_LOGIN = "Invalid email or password"
SIGNUP_REJECTED = "Unable to create account with the provided details"
PROVIDER_UNAVAILABLE = "Authentication service temporarily unavailable"


class SignupRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


def _require_credentials(email: Optional[str], password: Optional[str]) -> str:
    email = (email or "").strip()
    if not email or not password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and password are required",
        )
    return email


def _provider_failure(e: IdentityProviderError, action: str) -> HTTPException:
    if isinstance(e, IdentityProviderUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=PROVIDER_UNAVAILABLE)
    logger.error(
        "Unexpected identity provider error",
        extra={"action": action, "status_code": e.status_code, "error_code": e.code},
    )
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=PROVIDER_UNAVAILABLE)


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(
    body: SignupRequest,
    db: Session = Depends(get_db_session),
    clerk_client: ClerkBackendClient = Depends(get_clerk_client),
):
    email = _require_credentials(body.email, body.password)
    name = (body.name or "").strip() or None

    try:
        clerk_user = clerk_client.create_user(email, body.password, first_name=name)
    except InvalidCredentialsError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=SIGNUP_REJECTED)
    except IdentityProviderError as e:
        raise _provider_failure(e, "signup")

    store = IdentityStore(db)
    try:
        result = provision_user(
            store,
            clerk_user_id=clerk_user.id,
            email=clerk_user.primary_email or email,
            first_name=clerk_user.first_name or name,
            last_name=clerk_user.last_name,
            org_name=personal_organization_name(name or email),
            source="signup",
        )
        db.commit()
    except (SQLAlchemyError, ValidationError):
        # The Clerk account exists; the webhook or fallback sync will create the mirror.
        db.rollback()
        logger.exception("Local provisioning failed after Clerk signup", extra={"clerk_user_id": clerk_user.id})
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content={"clerk_user_id": clerk_user.id, "setup_pending": True},
        )

    return {
        "clerk_user_id": clerk_user.id,
        "setup_pending": False,
        "user": result.user.to_summary(),
        "organization": result.organization.to_summary() if result.organization else None,
    }


@router.post("/login")
def login(
    body: LoginRequest,
    db: Session = Depends(get_db_session),
    clerk_client: ClerkBackendClient = Depends(get_clerk_client),
):
    email = _require_credentials(body.email, body.password)

    try:
        candidates = clerk_client.find_users_by_email(email)
        clerk_user = candidates[0] if candidates else None
        if clerk_user is None or not clerk_client.verify_password(clerk_user.id, body.password):
            logger.info("Login rejected", extra={"found": clerk_user is not None})
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_LOGIN)
        sign_in = clerk_client.create_sign_in_token(clerk_user.id)
    except IdentityProviderError as e:
        raise _provider_failure(e, "login")

    identity = SessionContext(
        clerk_user_id=clerk_user.id,
        role=clerk_user.metadata_role,
        email=clerk_user.primary_email or email,
        first_name=clerk_user.first_name,
        last_name=clerk_user.last_name,
    )
    try:
        user = FallbackSyncService(db, clerk_client).ensure_user(identity)
    except AccountDeactivatedError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account has been deactivated")
    except SyncPendingError:
        record_audit_event(
            db,
            AuditAction.AUTH_LOGIN,
            target="session",
            metadata={"clerk_user_id": clerk_user.id, "method": "password", "setup_pending": True},
        )
        db.commit()
        return {"sign_in_token": sign_in.token, "url": sign_in.url, "setup_pending": True}

    record_audit_event(
        db,
        AuditAction.AUTH_LOGIN,
        org_id=user.org_id,
        actor_user_id=user.id,
        target="session",
        metadata={"clerk_user_id": clerk_user.id, "method": "password"},
    )
    db.commit()

    return {
        "sign_in_token": sign_in.token,
        "url": sign_in.url,
        "setup_pending": False,
        "user": user.to_summary(),
    }
