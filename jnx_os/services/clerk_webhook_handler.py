"""
Clerk Webhook Handler for processing verified Clerk webhook events.

Handles the following event types:
- user.created, user.updated, user.deleted
- organization.created, organization.updated
- organizationMembership.created, organizationMembership.updated

Anything else is acknowledged as a no-op.

Each delivery is one unit of work: the handler's writes and its audit row
commit together, or roll back together. Operational system events are
written afterwards in their own transaction:
- webhook.processed (info) after a successful commit
- webhook.skipped (warn) when a referenced user or organization is missing
- webhook.rejected (warn) for payloads that fail validation
- webhook.error (error) for anything else, which is re-raised so the
  sender retries
"""

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from jnx_os.models.user import UserRole
from jnx_os.platform.audit import AuditAction, record_audit_event
from jnx_os.platform.system_events import Severity, SystemEventType, log_system_event
from jnx_os.services.errors import ValidationError
from jnx_os.services.identity_store import IdentityStore
from jnx_os.services.provisioning import provision_user, role_update_from_metadata
from jnx_os.services.webhook_events import (
    MembershipCreatedEvent,
    MembershipUpdatedEvent,
    OrganizationCreatedEvent,
    OrganizationUpdatedEvent,
    UserCreatedEvent,
    UserDeletedEvent,
    UserUpdatedEvent,
    WebhookEvent,
    parse_webhook_event,
)

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_SKIPPED = "skipped"
STATUS_IGNORED = "ignored"


def map_membership_role(provider_role: Optional[str]) -> str:
    """Clerk membership roles may carry an "org:" prefix; only admin maps to admin."""
    if not provider_role:
        return UserRole.MEMBER.value
    role = provider_role[4:] if provider_role.startswith("org:") else provider_role
    return UserRole.ADMIN.value if role == UserRole.ADMIN.value else UserRole.MEMBER.value


class ClerkWebhookHandler:
    """
    Applies Clerk webhook events to the identity store.

    Routes events to handler methods and manages the delivery transaction.
    """

    def __init__(self, session: Session):
        self.session = session
        self.store = IdentityStore(session)

    # =========================================================================
    # Delivery processing
    # =========================================================================

    def process(self, payload: Dict[str, Any], delivery_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Parse, apply and record one verified webhook delivery.

        Raises:
            ValidationError: Malformed payload or missing required fields
            Exception: Any other failure, after rollback and an error event
        """
        event_type = payload.get("type") if isinstance(payload, dict) else None
        event_meta = {"event_type": event_type, "delivery_id": delivery_id}

        try:
            event = parse_webhook_event(payload)
            result = self.handle_event(event)
        except ValidationError as e:
            self._rollback()
            logger.warning(
                "Webhook rejected",
                extra={**event_meta, "error": e.message},
            )
            log_system_event(
                self.session,
                SystemEventType.WEBHOOK_REJECTED,
                f"Rejected Clerk webhook: {event_type}",
                severity=Severity.WARN,
                metadata={**event_meta, "error": e.message},
            )
            raise
        except Exception as e:
            self._rollback()
            logger.error(
                "Error handling webhook",
                extra={**event_meta, "error": str(e)},
                exc_info=True,
            )
            log_system_event(
                self.session,
                SystemEventType.WEBHOOK_ERROR,
                f"Error processing Clerk webhook: {event_type}",
                severity=Severity.ERROR,
                metadata={**event_meta, "error": type(e).__name__},
            )
            raise

        if result["status"] == STATUS_SKIPPED:
            log_system_event(
                self.session,
                SystemEventType.WEBHOOK_SKIPPED,
                f"Skipped Clerk webhook: {event_type}",
                severity=Severity.WARN,
                metadata={**event_meta, "reason": result.get("reason")},
            )

        log_system_event(
            self.session,
            SystemEventType.WEBHOOK_PROCESSED,
            f"Processed Clerk webhook: {event_type}",
            severity=Severity.INFO,
            metadata={**event_meta, "status": result["status"]},
        )
        return result

    def _rollback(self) -> None:
        try:
            self.session.rollback()
        except Exception:
            logger.exception("Rollback failed while handling webhook error")

    def handle_event(self, event: WebhookEvent) -> Dict[str, Any]:
        """
        Route a parsed event to its handler and commit.

        Returns:
            Dict with "status" and handler-specific details
        """
        handlers: Dict[type, Callable[[Any], Dict[str, Any]]] = {
            UserCreatedEvent: self.handle_user_created,
            UserUpdatedEvent: self.handle_user_updated,
            UserDeletedEvent: self.handle_user_deleted,
            OrganizationCreatedEvent: self.handle_organization_upsert,
            OrganizationUpdatedEvent: self.handle_organization_upsert,
            MembershipCreatedEvent: self.handle_membership_created,
            MembershipUpdatedEvent: self.handle_membership_updated,
        }

        handler = handlers.get(type(event))
        if handler is None:
            logger.info("Unhandled webhook event type", extra={"event_type": event.type})
            return {"status": STATUS_IGNORED, "reason": f"Unhandled event type: {event.type}"}

        try:
            result = handler(event)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Processed webhook event",
            extra={"event_type": event.type, "status": result["status"]},
        )
        return result

    def _skip(self, reason: str, **context: Any) -> Dict[str, Any]:
        logger.warning("Webhook event skipped", extra={"reason": reason, **context})
        return {"status": STATUS_SKIPPED, "reason": reason, **context}

    # =========================================================================
    # User Event Handlers
    # =========================================================================

    def handle_user_created(self, event: UserCreatedEvent) -> Dict[str, Any]:
        """
        Create the user and a personal organization, or refresh an existing user.
        """
        data = event.data
        existing = self.store.get_user_by_clerk_id(data.id, include_deleted=True)
        if existing is not None and existing.is_deleted:
            return self._skip("user_soft_deleted", clerk_user_id=data.id)

        email = data.primary_email
        if not email:
            raise ValidationError("No email address on user.created", field="email_addresses")

        result = provision_user(
            self.store,
            clerk_user_id=data.id,
            email=email,
            first_name=data.first_name,
            last_name=data.last_name,
            role=role_update_from_metadata(data.metadata_role),
            source="webhook",
        )
        return {
            "status": STATUS_SUCCESS,
            "user_id": result.user.id,
            "clerk_user_id": data.id,
            "created": result.created,
        }

    def handle_user_updated(self, event: UserUpdatedEvent) -> Dict[str, Any]:
        """
        Apply a partial update; omitted fields keep their stored values.

        A user never seen before is created through the user.created path.
        """
        data = event.data
        user = self.store.get_user_by_clerk_id(data.id, include_deleted=True)
        if user is None:
            logger.info(
                "User not found for user.updated, creating",
                extra={"clerk_user_id": data.id},
            )
            return self.handle_user_created(UserCreatedEvent(type="user.created", data=data))

        if user.is_deleted:
            return self._skip("user_soft_deleted", clerk_user_id=data.id)

        self.store.upsert_user(
            data.id,
            email=data.primary_email,
            first_name=data.first_name,
            last_name=data.last_name,
            role=role_update_from_metadata(data.metadata_role),
        )
        record_audit_event(
            self.session,
            AuditAction.USER_UPDATED,
            org_id=user.org_id,
            actor_user_id=user.id,
            target="user",
            metadata={"clerk_user_id": data.id},
        )
        return {"status": STATUS_SUCCESS, "user_id": user.id, "clerk_user_id": data.id}

    def handle_user_deleted(self, event: UserDeletedEvent) -> Dict[str, Any]:
        """Soft-delete the user; unknown or already-deleted users are a no-op."""
        clerk_user_id = event.data.id
        if not clerk_user_id:
            raise ValidationError("No user id on user.deleted", field="id")

        user = self.store.get_user_by_clerk_id(clerk_user_id, include_deleted=True)
        if user is None:
            logger.info("User not found for user.deleted", extra={"clerk_user_id": clerk_user_id})
            return {"status": STATUS_SUCCESS, "clerk_user_id": clerk_user_id, "deleted": False}

        if not self.store.soft_delete_user(user):
            return {"status": STATUS_SUCCESS, "clerk_user_id": clerk_user_id, "deleted": False}

        record_audit_event(
            self.session,
            AuditAction.USER_DELETED,
            org_id=user.org_id,
            target="user",
            metadata={"clerk_user_id": clerk_user_id, "user_id": user.id},
        )
        return {"status": STATUS_SUCCESS, "clerk_user_id": clerk_user_id, "deleted": True}

    # =========================================================================
    # Organization Event Handlers
    # =========================================================================

    def handle_organization_upsert(self, event: Any) -> Dict[str, Any]:
        """
        organization.created and organization.updated share upsert semantics;
        the audit action is the event name either way.
        """
        data = event.data
        result = self.store.upsert_organization(name=data.name, clerk_org_id=data.id)
        action = (
            AuditAction.ORGANIZATION_CREATED
            if isinstance(event, OrganizationCreatedEvent)
            else AuditAction.ORGANIZATION_UPDATED
        )
        record_audit_event(
            self.session,
            action,
            org_id=result.record.id,
            target="organization",
            metadata={"clerk_org_id": data.id, "name": data.name, "inserted": result.created},
        )
        return {
            "status": STATUS_SUCCESS,
            "org_id": result.record.id,
            "clerk_org_id": data.id,
            "created": result.created,
        }

    # =========================================================================
    # Membership Event Handlers
    # =========================================================================

    def _resolve_membership(self, event: Any):
        data = event.data
        clerk_user_id = data.public_user_data.user_id
        clerk_org_id = data.organization.id
        context = {"clerk_user_id": clerk_user_id, "clerk_org_id": clerk_org_id}

        if not clerk_user_id:
            return None, None, self._skip("membership_without_user", **context)

        user = self.store.get_user_by_clerk_id(clerk_user_id, include_deleted=True)
        if user is None:
            return None, None, self._skip("user_not_found", **context)
        if user.is_deleted:
            return None, None, self._skip("user_soft_deleted", **context)

        org = self.store.get_organization_by_clerk_id(clerk_org_id)
        if org is None:
            return None, None, self._skip("organization_not_found", **context)

        return user, org, None

    def handle_membership_created(self, event: MembershipCreatedEvent) -> Dict[str, Any]:
        """Move the user into the organization."""
        user, org, skipped = self._resolve_membership(event)
        if skipped is not None:
            return skipped

        self.store.set_user_organization(user, org.id)
        record_audit_event(
            self.session,
            AuditAction.ORGANIZATION_MEMBER_ADDED,
            org_id=org.id,
            actor_user_id=user.id,
            target="organization_membership",
            metadata={"clerk_user_id": user.clerk_user_id, "clerk_org_id": org.clerk_org_id},
        )
        return {"status": STATUS_SUCCESS, "user_id": user.id, "org_id": org.id}

    def handle_membership_updated(self, event: MembershipUpdatedEvent) -> Dict[str, Any]:
        """Apply the membership role to the user."""
        user, org, skipped = self._resolve_membership(event)
        if skipped is not None:
            return skipped

        new_role = map_membership_role(event.data.role)
        self.store.set_user_role(user, new_role)
        record_audit_event(
            self.session,
            AuditAction.ORGANIZATION_MEMBER_UPDATED,
            org_id=org.id,
            actor_user_id=user.id,
            target="organization_membership",
            metadata={
                "clerk_user_id": user.clerk_user_id,
                "clerk_org_id": org.clerk_org_id,
                "role": new_role,
            },
        )
        return {"status": STATUS_SUCCESS, "user_id": user.id, "org_id": org.id, "role": new_role}
