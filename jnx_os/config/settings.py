"""
Application configuration loaded from environment variables.

All runtime configuration for JNX-OS is read here once and passed down to the
components that need it (app factory, middleware, services). Nothing else in
the package reads os.environ directly, so tests can build isolated Settings
instances without patching the environment.

Environment variables:
- ENV: deployment environment (development, test, staging, production)
- DATABASE_URL: managed Postgres connection string
- CLERK_SECRET_KEY: Clerk Backend API secret (sk_...)
- CLERK_PUBLISHABLE_KEY: Clerk publishable key (pk_...)
- CLERK_ISSUER_URL: Clerk frontend API URL, issuer of session JWTs
- CLERK_API_URL: Clerk Backend API base URL
- CLERK_WEBHOOK_SECRET: Svix signing secret for Clerk webhooks (whsec_...)
- PUBLIC_APP_URL: public base URL of the site
- CORS_ORIGINS: comma-separated allowed origins
- SUPPORT_EMAIL: contact shown when account setup fails
- LOG_LEVEL / LOG_FORMAT: logging verbosity and format (text or json)
- SETUP_MAX_ATTEMPTS / SETUP_RETRY_INTERVAL_SECONDS: dashboard setup retry policy
"""

import os
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CLERK_API_URL = "https://api.clerk.com/v1"
DEFAULT_SUPPORT_EMAIL = "support@jnxlabs.ai"


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "Invalid integer in environment, using default",
            extra={"variable": name, "default": default},
        )
        return default


def normalize_database_url(database_url: str) -> str:
    """
    Normalize a Postgres URL for SQLAlchemy + psycopg 3.

    Managed Postgres providers hand out postgres:// URLs; SQLAlchemy requires
    postgresql:// and defaults to psycopg2 unless the driver is named.
    """
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    env: str = "development"
    database_url: Optional[str] = None
    clerk_secret_key: Optional[str] = None
    clerk_publishable_key: Optional[str] = None
    clerk_issuer_url: Optional[str] = None
    clerk_api_url: str = DEFAULT_CLERK_API_URL
    clerk_webhook_secret: Optional[str] = None
    public_app_url: str = "http://localhost:3000"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    support_email: str = DEFAULT_SUPPORT_EMAIL
    log_level: str = "INFO"
    log_format: str = "text"
    setup_max_attempts: int = 12
    setup_retry_interval_seconds: int = 5

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        database_url = os.getenv("DATABASE_URL")
        cors_origins = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]
        env = os.getenv("ENV", "development")

        return cls(
            env=env,
            database_url=normalize_database_url(database_url) if database_url else None,
            clerk_secret_key=os.getenv("CLERK_SECRET_KEY"),
            clerk_publishable_key=os.getenv("CLERK_PUBLISHABLE_KEY"),
            clerk_issuer_url=os.getenv("CLERK_ISSUER_URL"),
            clerk_api_url=os.getenv("CLERK_API_URL", DEFAULT_CLERK_API_URL).rstrip("/"),
            clerk_webhook_secret=os.getenv("CLERK_WEBHOOK_SECRET"),
            public_app_url=os.getenv("PUBLIC_APP_URL", "http://localhost:3000"),
            cors_origins=cors_origins,
            support_email=os.getenv("SUPPORT_EMAIL", DEFAULT_SUPPORT_EMAIL),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "text" if env == "development" else "json"),
            setup_max_attempts=_get_int("SETUP_MAX_ATTEMPTS", 12),
            setup_retry_interval_seconds=_get_int("SETUP_RETRY_INTERVAL_SECONDS", 5),
        )

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def auth_configured(self) -> bool:
        """Whether session JWTs can be verified."""
        return bool(self.clerk_issuer_url)

    @property
    def identity_api_configured(self) -> bool:
        """Whether the Clerk Backend API can be called."""
        return bool(self.clerk_secret_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment."""
    return Settings.from_env()
