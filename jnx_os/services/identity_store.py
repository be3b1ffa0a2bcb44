"""
Reconciliation store for users and organizations.

IdentityStore is the only writer of the users and organizations tables.
Webhook handlers, the fallback sync, the legacy auth endpoints, the admin
console and the privacy tooling all go through it.

Concurrency:
    Upserts check for an existing row first and insert only when none is
    found. The insert runs inside a SAVEPOINT; when a concurrent writer
    (a redelivered webhook racing the fallback sync) wins the unique
    constraint on the external id, the IntegrityError unwinds only the
    savepoint, the winning row is re-read and the update is applied to it.
    Both paths converge on one row per external id.

The store never commits. The caller owns the transaction.
"""

import logging
from dataclasses import dataclass
from typing import Generic, List, Optional, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jnx_os.models.base import utcnow
from jnx_os.models.organization import Organization
from jnx_os.models.user import User, UserRole
from jnx_os.services.errors import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ANONYMIZED_EMAIL_DOMAIN = "deleted.local"


@dataclass
class UpsertResult(Generic[T]):
    """Row produced by an upsert and whether it was inserted."""

    record: T
    created: bool


def _validate_role(role: Optional[str]) -> Optional[str]:
    if role is None:
        return None
    if role not in (UserRole.ADMIN.value, UserRole.MEMBER.value):
        raise ValidationError(f"Unknown role: {role}", field="role")
    return role


class IdentityStore:
    """Data-access layer for the local identity mirror."""

    def __init__(self, session: Session):
        self.session = session

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: str, include_deleted: bool = False) -> Optional[User]:
        query = self.session.query(User).filter(User.id == user_id)
        if not include_deleted:
            query = query.filter(User.deleted_at.is_(None))
        return query.first()

    def get_user_by_clerk_id(
        self,
        clerk_user_id: str,
        include_deleted: bool = False,
    ) -> Optional[User]:
        query = self.session.query(User).filter(User.clerk_user_id == clerk_user_id)
        if not include_deleted:
            query = query.filter(User.deleted_at.is_(None))
        return query.first()

    def list_users(self, include_deleted: bool = False) -> List[User]:
        query = self.session.query(User)
        if not include_deleted:
            query = query.filter(User.deleted_at.is_(None))
        return query.order_by(User.created_at.desc()).all()

    def count_active_users(self) -> int:
        return self.session.query(func.count(User.id)).filter(User.deleted_at.is_(None)).scalar() or 0

    def email_taken(self, email: str, clerk_user_id: Optional[str] = None) -> bool:
        """Whether another active user already holds this email."""
        query = self.session.query(User.id).filter(User.email == email, User.deleted_at.is_(None))
        if clerk_user_id is not None:
            query = query.filter(User.clerk_user_id != clerk_user_id)
        return query.first() is not None

    def require_email_available(self, email: str, clerk_user_id: str) -> None:
        if self.email_taken(email, clerk_user_id):
            raise ValidationError("Email address already belongs to another active user", field="email")

    def upsert_user(
        self,
        clerk_user_id: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: Optional[str] = None,
        org_id: Optional[str] = None,
    ) -> UpsertResult[User]:
        """
        Insert or update the user keyed by clerk_user_id.

        Arguments left as None keep their stored value on update; an empty
        name clears the stored one. An insert requires an email and defaults
        role to member.

        Raises:
            ValidationError: No email on insert, or an unknown role
        """
        if not clerk_user_id:
            raise ValidationError("clerk_user_id is required", field="clerk_user_id")
        role = _validate_role(role)

        existing = self.get_user_by_clerk_id(clerk_user_id, include_deleted=True)
        if existing is not None:
            self._apply_user_fields(existing, email, first_name, last_name, role, org_id)
            return UpsertResult(existing, created=False)

        result = self.create_user(clerk_user_id, email, first_name, last_name, role, org_id)
        if not result.created:
            self._apply_user_fields(result.record, email, first_name, last_name, role, org_id)
        return result

    def create_user(
        self,
        clerk_user_id: str,
        email: Optional[str],
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: Optional[str] = None,
        org_id: Optional[str] = None,
    ) -> UpsertResult[User]:
        """
        Insert a user row inside a SAVEPOINT.

        When the unique constraint on clerk_user_id reports a concurrent
        insert, the winning row is returned unchanged with created=False.
        An email held by another active user is a ValidationError, whether
        found up front or reported by the partial unique index.
        """
        if not email:
            raise ValidationError("Email address is required to create a user", field="email")
        self.require_email_available(email, clerk_user_id)

        user = User(
            clerk_user_id=clerk_user_id,
            email=email,
            first_name=first_name or None,
            last_name=last_name or None,
            role=_validate_role(role) or UserRole.MEMBER.value,
            org_id=org_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(user)
        except IntegrityError:
            winner = self.get_user_by_clerk_id(clerk_user_id, include_deleted=True)
            if winner is None:
                self.require_email_available(email, clerk_user_id)
                raise
            logger.info(
                "Concurrent user insert resolved to existing row",
                extra={"clerk_user_id": clerk_user_id, "user_id": winner.id},
            )
            return UpsertResult(winner, created=False)

        logger.info(
            "Created user",
            extra={"clerk_user_id": clerk_user_id, "user_id": user.id, "org_id": org_id},
        )
        return UpsertResult(user, created=True)

    def _apply_user_fields(
        self,
        user: User,
        email: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        role: Optional[str],
        org_id: Optional[str],
    ) -> None:
        if email is not None and email != user.email and user.deleted_at is None:
            self.require_email_available(email, user.clerk_user_id)
        if email is not None:
            user.email = email
        if first_name is not None:
            user.first_name = first_name or None
        if last_name is not None:
            user.last_name = last_name or None
        if role is not None:
            user.role = role
        if org_id is not None:
            user.org_id = org_id
        self.session.flush()
        logger.info(
            "Updated user",
            extra={"clerk_user_id": user.clerk_user_id, "user_id": user.id},
        )

    def set_user_organization(self, user: User, org_id: str) -> User:
        user.org_id = org_id
        self.session.flush()
        return user

    def set_user_role(self, user: User, role: str) -> User:
        user.role = _validate_role(role)
        self.session.flush()
        return user

    def soft_delete_user(self, user: User) -> bool:
        """Set deleted_at. Returns False when it was already set."""
        if user.deleted_at is not None:
            return False
        user.deleted_at = utcnow()
        self.session.flush()
        logger.info(
            "Soft-deleted user",
            extra={"clerk_user_id": user.clerk_user_id, "user_id": user.id},
        )
        return True

    def restore_user(self, user: User) -> bool:
        """Clear deleted_at. Returns False when the user was not deleted."""
        if user.deleted_at is None:
            return False
        self.require_email_available(user.email, user.clerk_user_id)
        user.deleted_at = None
        self.session.flush()
        logger.info(
            "Restored user",
            extra={"clerk_user_id": user.clerk_user_id, "user_id": user.id},
        )
        return True

    def anonymize_user(self, user: User) -> User:
        """Replace PII with placeholders and soft-delete."""
        user.email = f"anonymized_{user.id[:8]}@{ANONYMIZED_EMAIL_DOMAIN}"
        user.first_name = "Deleted"
        user.last_name = "User"
        if user.deleted_at is None:
            user.deleted_at = utcnow()
        self.session.flush()
        return user

    def hard_delete_user(self, user: User) -> None:
        """Physically remove the row. Only the audited erasure path calls this."""
        user_id = user.id
        self.session.delete(user)
        self.session.flush()
        logger.warning("Hard-deleted user", extra={"user_id": user_id})

    # =========================================================================
    # Organizations
    # =========================================================================

    def get_organization(self, org_id: str) -> Optional[Organization]:
        return self.session.query(Organization).filter(Organization.id == org_id).first()

    def get_organization_by_clerk_id(self, clerk_org_id: str) -> Optional[Organization]:
        return (
            self.session.query(Organization)
            .filter(Organization.clerk_org_id == clerk_org_id)
            .first()
        )

    def list_organizations(self) -> List[Organization]:
        return self.session.query(Organization).order_by(Organization.created_at.desc()).all()

    def count_members(self, org_id: str) -> int:
        return (
            self.session.query(func.count(User.id))
            .filter(User.org_id == org_id, User.deleted_at.is_(None))
            .scalar()
            or 0
        )

    def upsert_organization(
        self,
        name: str,
        clerk_org_id: Optional[str] = None,
    ) -> UpsertResult[Organization]:
        """
        Insert or update the organization keyed by clerk_org_id.

        Without a clerk_org_id the organization is local and always inserted.
        """
        if not name:
            raise ValidationError("Organization name is required", field="name")

        if clerk_org_id:
            existing = self.get_organization_by_clerk_id(clerk_org_id)
            if existing is not None:
                existing.name = name
                self.session.flush()
                return UpsertResult(existing, created=False)

        org = Organization(name=name, clerk_org_id=clerk_org_id)
        try:
            with self.session.begin_nested():
                self.session.add(org)
        except IntegrityError:
            winner = self.get_organization_by_clerk_id(clerk_org_id) if clerk_org_id else None
            if winner is None:
                raise
            logger.info(
                "Concurrent organization insert resolved to existing row",
                extra={"clerk_org_id": clerk_org_id, "org_id": winner.id},
            )
            winner.name = name
            self.session.flush()
            return UpsertResult(winner, created=False)

        logger.info(
            "Created organization",
            extra={"org_id": org.id, "clerk_org_id": clerk_org_id},
        )
        return UpsertResult(org, created=True)
