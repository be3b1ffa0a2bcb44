"""
Server-side fallback sync.

Masks webhook delivery lag: when an authenticated request needs the local
user and the user.created webhook has not landed yet, the user and a
personal organization are provisioned on the spot from the session claims,
through the same routine the webhook uses. The unique constraint on
clerk_user_id makes this safe to race with the webhook.

Data flows:
1. Session claims (email, names, metadata.role) -> provision_user
2. No email claim -> Clerk Backend API GET /users/{id} -> provision_user
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jnx_os.auth.session import SessionContext
from jnx_os.integrations.clerk.client import ClerkBackendClient
from jnx_os.integrations.clerk.exceptions import IdentityProviderError
from jnx_os.models.user import User
from jnx_os.platform.system_events import Severity, SystemEventType, log_system_event
from jnx_os.services.errors import AccountDeactivatedError, SyncPendingError, ValidationError
from jnx_os.services.identity_store import IdentityStore
from jnx_os.services.provisioning import provision_user, role_update_from_metadata

logger = logging.getLogger(__name__)


class FallbackSyncService:
    """Returns the local user for an authenticated identity, creating it if needed."""

    def __init__(self, session: Session, clerk_client: Optional[ClerkBackendClient] = None):
        self.session = session
        self.store = IdentityStore(session)
        self.clerk_client = clerk_client

    def ensure_user(self, identity: SessionContext) -> User:
        """
        Raises:
            AccountDeactivatedError: The local user is soft-deleted
            SyncPendingError: Database or Clerk unavailable, or no email known yet
        """
        clerk_user_id = identity.clerk_user_id
        try:
            user = self.store.get_user_by_clerk_id(clerk_user_id, include_deleted=True)
        except SQLAlchemyError as e:
            raise self._pending(clerk_user_id, "database_read_failed", e)

        if user is not None:
            if user.is_deleted:
                raise AccountDeactivatedError()
            return user

        email, first_name, last_name, role_hint = self._identity_fields(identity)

        try:
            result = provision_user(
                self.store,
                clerk_user_id=clerk_user_id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                role=role_update_from_metadata(role_hint),
                source="fallback_sync",
            )
            self.session.commit()
        except ValidationError as e:
            self.session.rollback()
            raise self._pending(clerk_user_id, f"invalid_{e.field or 'identity'}", e)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise self._pending(clerk_user_id, "database_write_failed", e)

        logger.info(
            "Fallback sync provisioned user",
            extra={"clerk_user_id": clerk_user_id, "user_id": result.user.id, "created": result.created},
        )
        return result.user

    def _identity_fields(self, identity: SessionContext):
        """Session claims first; the Backend API only when email is absent."""
        if identity.email:
            return identity.email, identity.first_name, identity.last_name, identity.role

        if self.clerk_client is None or not self.clerk_client.is_configured:
            raise self._pending(identity.clerk_user_id, "identity_provider_not_configured")

        try:
            clerk_user = self.clerk_client.get_user(identity.clerk_user_id)
        except IdentityProviderError as e:
            raise self._pending(identity.clerk_user_id, "identity_provider_failed", e)

        return (
            clerk_user.primary_email,
            clerk_user.first_name or identity.first_name,
            clerk_user.last_name or identity.last_name,
            identity.role or clerk_user.metadata_role,
        )

    def _pending(
        self,
        clerk_user_id: str,
        reason: str,
        error: Optional[Exception] = None,
    ) -> SyncPendingError:
        """Record the failure and build the error for the caller to raise."""
        logger.warning(
            "Fallback sync could not provision user",
            extra={
                "clerk_user_id": clerk_user_id,
                "reason": reason,
                "error": type(error).__name__ if error else None,
            },
        )
        log_system_event(
            self.session,
            SystemEventType.FALLBACK_SYNC_FAILED,
            "Fallback sync could not provision user",
            severity=Severity.WARN,
            metadata={"clerk_user_id": clerk_user_id, "reason": reason},
        )
        return SyncPendingError()
