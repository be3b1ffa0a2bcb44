"""
Shared FastAPI dependencies.

Application-scoped objects (settings, Clerk client, rate limiters) are
created once by the app factory and stored on app.state; routes reach them
through these functions so tests can swap them with dependency overrides.
"""

from fastapi import Request

from jnx_os.config.settings import Settings
from jnx_os.integrations.clerk.client import ClerkBackendClient
from jnx_os.security.rate_limit import RateLimiterRegistry


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clerk_client(request: Request) -> ClerkBackendClient:
    return request.app.state.clerk_client


def get_rate_limiters(request: Request) -> RateLimiterRegistry:
    return request.app.state.rate_limiters
