"""
Request authentication and the page access gate.

Request Flow:
1. Middleware extracts the session JWT from the Authorization header or the
   Clerk __session cookie
2. JWT verified using ClerkJWTVerifier
3. SessionContext attached to request.state.session (None when anonymous)
4. Gate rules applied to the path:
   - /admin: anonymous -> /login, non-admin role claim -> /app
   - /app: anonymous -> /login
   - /login, /signup: authenticated -> /app
5. Route handlers access the session via dependencies

Invalid or expired tokens degrade to anonymous; they never fail the request
on their own. Webhook paths skip the middleware entirely.

Usage:

    app.add_middleware(ClerkAuthMiddleware, verifier=verifier)

    @router.get("/protected")
    def protected_route(session: SessionContext = Depends(require_session)):
        return {"clerk_user_id": session.clerk_user_id}
"""

import logging
from typing import Callable, List, Optional, Protocol, Set, Any, Dict

from fastapi import HTTPException, status
from pydantic import ValidationError as PydanticValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from jnx_os.auth.clerk_verifier import ClerkVerificationError
from jnx_os.auth.session import SessionContext

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
SIGNUP_PATH = "/signup"
APP_PREFIX = "/app"
ADMIN_PREFIX = "/admin"

# Paths that bypass the middleware entirely
EXEMPT_PATHS: Set[str] = {
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}

EXEMPT_PREFIXES: List[str] = [
    "/api/webhooks/",
    "/static/",
]


class TokenVerifier(Protocol):
    def verify_token(self, token: str) -> Dict[str, Any]:
        ...


def _matches_prefix(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def gate_redirect(path: str, session: Optional[SessionContext]) -> Optional[str]:
    """
    Decide where (if anywhere) a request must be redirected.

    Returns the redirect target path, or None to let the request through.
    """
    if _matches_prefix(path, ADMIN_PREFIX):
        if session is None:
            return LOGIN_PATH
        if session.role != "admin":
            return APP_PREFIX
        return None

    if _matches_prefix(path, APP_PREFIX):
        if session is None:
            return LOGIN_PATH
        return None

    if session is not None and path in (LOGIN_PATH, SIGNUP_PATH):
        return APP_PREFIX

    return None


class ClerkAuthMiddleware(BaseHTTPMiddleware):
    """
    Starlette middleware for Clerk session authentication and page gating.

    With no verifier configured every request is anonymous, so gated
    prefixes always redirect to /login.
    """

    def __init__(
        self,
        app,
        verifier: Optional[TokenVerifier] = None,
        exempt_paths: Optional[Set[str]] = None,
        exempt_prefixes: Optional[List[str]] = None,
        cookie_name: str = "__session",
    ):
        super().__init__(app)
        self._verifier = verifier
        self._exempt_paths = exempt_paths or EXEMPT_PATHS
        self._exempt_prefixes = exempt_prefixes or EXEMPT_PREFIXES
        self._cookie_name = cookie_name

    def _is_exempt(self, path: str) -> bool:
        if path in self._exempt_paths:
            return True
        return any(path.startswith(prefix) for prefix in self._exempt_prefixes)

    def _extract_token(self, request: Request) -> Optional[str]:
        """
        Extract JWT from request.

        Checks in order:
        1. Authorization header (Bearer token)
        2. Session cookie (__session)
        """
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[7:]

        cookie_token = request.cookies.get(self._cookie_name)
        if cookie_token:
            return cookie_token

        return None

    def _authenticate(self, request: Request) -> Optional[SessionContext]:
        token = self._extract_token(request)
        if not token or self._verifier is None:
            return None

        try:
            claims = self._verifier.verify_token(token)
            return SessionContext.from_claims(claims)
        except ClerkVerificationError as e:
            logger.info(
                "Session token rejected",
                extra={"path": request.url.path, "error_code": e.error_code},
            )
        except PydanticValidationError:
            logger.warning(
                "Session claims malformed",
                extra={"path": request.url.path},
            )
        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        request.state.session = None

        if self._is_exempt(path):
            return await call_next(request)

        session = self._authenticate(request)
        request.state.session = session

        target = gate_redirect(path, session)
        if target is not None:
            logger.debug(
                "Gate redirect",
                extra={"path": path, "target": target, "authenticated": session is not None},
            )
            return RedirectResponse(url=target, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

        return await call_next(request)


# =============================================================================
# FastAPI Dependencies
# =============================================================================


def get_session_context(request: Request) -> Optional[SessionContext]:
    """Session set by the middleware, or None for anonymous requests."""
    return getattr(request.state, "session", None)


def require_session(request: Request) -> SessionContext:
    """
    FastAPI dependency that requires authentication.

    Raises HTTPException 401 if the caller is anonymous.
    """
    session = get_session_context(request)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def require_admin(request: Request) -> SessionContext:
    """
    FastAPI dependency that requires the admin role claim.

    Raises HTTPException 401 when anonymous, 403 for non-admins.
    """
    session = require_session(request)
    if not session.is_admin:
        logger.warning(
            "Admin access denied",
            extra={"clerk_user_id": session.clerk_user_id, "path": request.url.path},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return session
