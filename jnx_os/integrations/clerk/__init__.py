"""Clerk Backend API integration."""

from jnx_os.integrations.clerk.client import ClerkBackendClient
from jnx_os.integrations.clerk.exceptions import (
    IdentityNotFoundError,
    IdentityProviderError,
    IdentityProviderNotConfiguredError,
    IdentityProviderUnavailableError,
    InvalidCredentialsError,
)

__all__ = [
    "ClerkBackendClient",
    "IdentityNotFoundError",
    "IdentityProviderError",
    "IdentityProviderNotConfiguredError",
    "IdentityProviderUnavailableError",
    "InvalidCredentialsError",
]
