"""
Domain exceptions raised by the identity services.

Routes translate these into HTTP responses; messages are safe to log but
user-facing responses stay generic.
"""

from typing import Optional


class IdentitySyncError(Exception):
    """Base exception for identity reconciliation failures."""

    def __init__(self, message: str, error_code: str = "identity_sync_error"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class ValidationError(IdentitySyncError):
    """Input cannot be reconciled (e.g. a user with no email address)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, error_code="validation_error")
        self.field = field


class SyncPendingError(IdentitySyncError):
    """
    The local mirror for an authenticated user could not be produced yet.

    Raised by the fallback sync when the database or Clerk is unavailable;
    the dashboard answers with a retryable setup-in-progress response.
    """

    def __init__(self, message: str = "Account setup is still in progress"):
        super().__init__(message, error_code="sync_pending")


class AccountDeactivatedError(IdentitySyncError):
    """The authenticated identity maps to a soft-deleted local user."""

    def __init__(self, message: str = "Account has been deactivated"):
        super().__init__(message, error_code="account_deactivated")
