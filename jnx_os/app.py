"""
FastAPI application factory for JNX-OS.

Session authentication and the page access gate are enforced by
ClerkAuthMiddleware; webhook routes bypass it and rely on Svix signature
verification instead.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jnx_os import __version__
from jnx_os.api.routes import admin, auth, dashboard, health, users, webhooks_clerk
from jnx_os.auth.clerk_verifier import ClerkJWTVerifier
from jnx_os.auth.middleware import ClerkAuthMiddleware, TokenVerifier
from jnx_os.config.settings import Settings, get_settings
from jnx_os.integrations.clerk.client import ClerkBackendClient
from jnx_os.security.headers import SecurityHeadersConfig, SecurityHeadersMiddleware
from jnx_os.security.rate_limit import RateLimiterRegistry

logger = logging.getLogger(__name__)


def _log_configuration(settings: Settings) -> None:
    """Surface missing configuration in deploy logs."""
    if not settings.auth_configured:
        logger.warning(
            "Clerk authentication not configured (missing CLERK_ISSUER_URL). "
            "All sessions are anonymous and gated pages redirect to /login."
        )
    if not settings.identity_api_configured:
        logger.warning(
            "CLERK_SECRET_KEY not set. Legacy auth, role changes and the "
            "fallback sync email lookup will report the provider unavailable."
        )
    if not settings.clerk_webhook_secret:
        logger.error("CLERK_WEBHOOK_SECRET not set. Clerk webhooks will return 503.")
    if not settings.database_url:
        logger.error("DATABASE_URL is not set. Database-backed endpoints will return 503.")
    else:
        masked = settings.database_url.split("@")[-1] if "@" in settings.database_url else "(local)"
        logger.info("DATABASE_URL configured", extra={"host_db": masked})


def create_app(
    settings: Optional[Settings] = None,
    verifier: Optional[TokenVerifier] = None,
    clerk_client: Optional[ClerkBackendClient] = None,
    rate_limiters: Optional[RateLimiterRegistry] = None,
) -> FastAPI:
    """
    Build the application.

    Every collaborator can be injected; anything omitted is built from
    settings. Without CLERK_ISSUER_URL no verifier is created and every
    request is anonymous.
    """
    settings = settings or get_settings()
    if verifier is None and settings.auth_configured:
        verifier = ClerkJWTVerifier.from_settings(settings)
    if clerk_client is None:
        clerk_client = ClerkBackendClient(settings.clerk_secret_key, base_url=settings.clerk_api_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting JNX-OS API", extra={"env": settings.env, "version": __version__})
        _log_configuration(settings)
        yield
        app.state.clerk_client.close()
        logger.info("Shutting down JNX-OS API")

    app = FastAPI(
        title="JNX-OS API",
        description="Identity reconciliation, admin console and privacy tooling",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.clerk_client = clerk_client
    app.state.rate_limiters = rate_limiters or RateLimiterRegistry()

    # Last added runs first: headers wrap CORS, which wraps the auth gate
    app.add_middleware(ClerkAuthMiddleware, verifier=verifier)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware, config=SecurityHeadersConfig())

    app.include_router(health.router)
    app.include_router(webhooks_clerk.router)
    app.include_router(users.router)
    app.include_router(auth.router)
    app.include_router(dashboard.router)
    app.include_router(admin.router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unhandled exceptions with proper logging."""
        session = getattr(request.state, "session", None)
        logger.error(
            "Unhandled exception",
            extra={
                "clerk_user_id": session.clerk_user_id if session is not None else None,
                "error_type": type(exc).__name__,
                "path": request.url.path,
            },
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "detail": "An unexpected error occurred"},
        )

    return app
