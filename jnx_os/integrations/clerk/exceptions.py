"""
Clerk Backend API exceptions.

Follows the same pattern as the other integration exceptions: a base error
carrying status_code/code/response and narrower subclasses the routes
translate into HTTP responses.
"""

from typing import Any, Dict, Optional


class IdentityProviderError(Exception):
    """Base exception for Clerk Backend API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.response = response or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class IdentityProviderUnavailableError(IdentityProviderError):
    """Clerk could not be reached, timed out, or answered 5xx/429."""

    def __init__(self, message: str = "Identity provider unavailable", **kwargs):
        super().__init__(message, **kwargs)


class IdentityProviderNotConfiguredError(IdentityProviderUnavailableError):
    """CLERK_SECRET_KEY is not set."""

    def __init__(self, message: str = "Identity provider not configured", **kwargs):
        super().__init__(message, **kwargs)


class InvalidCredentialsError(IdentityProviderError):
    """Clerk rejected the credentials or the request payload (4xx)."""

    def __init__(self, message: str = "Invalid credentials", **kwargs):
        super().__init__(message, **kwargs)


class IdentityNotFoundError(IdentityProviderError):
    def __init__(self, message: str = "Identity not found", **kwargs):
        super().__init__(message, status_code=404, **kwargs)
