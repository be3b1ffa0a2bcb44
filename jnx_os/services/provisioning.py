"""
Create-pair provisioning: a personal organization plus the user in it.

Shared by the user.created webhook, the fallback sync and the legacy
signup endpoint so every path produces the same rows and the same audit
entry. Callers own the transaction and must skip soft-deleted users before
calling in.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from jnx_os.models.organization import Organization
from jnx_os.models.user import User, UserRole
from jnx_os.platform.audit import AuditAction, record_audit_event
from jnx_os.platform.system_events import Severity, SystemEventType, log_system_event
from jnx_os.services.errors import ValidationError
from jnx_os.services.identity_store import IdentityStore

logger = logging.getLogger(__name__)

DEFAULT_NAME_PLACEHOLDER = "User"


@dataclass
class ProvisionResult:
    user: User
    created: bool
    organization: Optional[Organization] = None


def personal_organization_name(label: Optional[str]) -> str:
    return f"{label or DEFAULT_NAME_PLACEHOLDER}'s Organization"


def role_from_metadata(role_hint: Optional[str]) -> str:
    """Only an explicit "admin" grants admin."""
    return UserRole.ADMIN.value if role_hint == UserRole.ADMIN.value else UserRole.MEMBER.value


def role_update_from_metadata(role_hint: Optional[str]) -> Optional[str]:
    """
    Role to apply for a metadata hint, or None when no hint was sent.

    None leaves an existing user's role alone; new users default to member.
    """
    return role_from_metadata(role_hint) if role_hint else None


def provision_user(
    store: IdentityStore,
    clerk_user_id: str,
    email: Optional[str],
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    role: Optional[str] = None,
    org_name: Optional[str] = None,
    source: str = "webhook",
) -> ProvisionResult:
    """
    Ensure the user exists, creating a personal organization for new users.

    An existing user gets the latest fields applied (audit user.updated).
    A new user gets a fresh organization named after org_name or the first
    name (audit user.signup). When a concurrent writer inserts the same
    clerk_user_id first, the organization created here is left without
    members; that is logged and the winner's row is updated instead.

    Raises:
        ValidationError: No email address, or the email belongs to another
            active user
    """
    if not email:
        raise ValidationError("Email address is required to create a user", field="email")

    existing = store.get_user_by_clerk_id(clerk_user_id, include_deleted=True)
    if existing is not None:
        return _update_existing(store, clerk_user_id, email, first_name, last_name, role, source)
    store.require_email_available(email, clerk_user_id)

    org = store.upsert_organization(org_name or personal_organization_name(first_name)).record
    try:
        result = store.create_user(
            clerk_user_id=clerk_user_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=role or UserRole.MEMBER.value,
            org_id=org.id,
        )
    except Exception:
        logger.error(
            "User insert failed after organization insert; organization orphaned",
            extra={"clerk_user_id": clerk_user_id, "org_id": org.id, "source": source},
        )
        raise

    if not result.created:
        logger.warning(
            "Lost provisioning race; organization left without members",
            extra={"clerk_user_id": clerk_user_id, "org_id": org.id, "source": source},
        )
        log_system_event(
            store.session,
            SystemEventType.ORPHANED_ORGANIZATION,
            "Organization left without members after a provisioning race",
            severity=Severity.WARN,
            metadata={"clerk_user_id": clerk_user_id, "org_id": org.id, "source": source},
            commit=False,
        )
        return _update_existing(store, clerk_user_id, email, first_name, last_name, role, source)

    user = result.record
    record_audit_event(
        store.session,
        AuditAction.USER_SIGNUP,
        org_id=org.id,
        actor_user_id=user.id,
        target="user",
        metadata={"clerk_user_id": clerk_user_id, "email": email, "source": source},
    )
    logger.info(
        "Provisioned user with personal organization",
        extra={"clerk_user_id": clerk_user_id, "user_id": user.id, "org_id": org.id, "source": source},
    )
    return ProvisionResult(user=user, created=True, organization=org)


def _update_existing(
    store: IdentityStore,
    clerk_user_id: str,
    email: str,
    first_name: Optional[str],
    last_name: Optional[str],
    role: Optional[str],
    source: str,
) -> ProvisionResult:
    user = store.upsert_user(
        clerk_user_id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
    ).record
    record_audit_event(
        store.session,
        AuditAction.USER_UPDATED,
        org_id=user.org_id,
        actor_user_id=user.id,
        target="user",
        metadata={"clerk_user_id": clerk_user_id, "source": source},
    )
    return ProvisionResult(user=user, created=False, organization=user.organization)
