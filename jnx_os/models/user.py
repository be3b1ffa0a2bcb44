"""
User model: the local mirror of a Clerk user.

User rows are written only by the reconciliation store
(jnx_os.services.identity_store). Clerk is the source of truth for
credentials and sessions; this table mirrors profile, role and
organization membership so the dashboard and admin console can query them.

CRITICAL SECURITY:
- NO PASSWORDS are stored locally - Clerk handles all authentication
- clerk_user_id is unique at the database level; the reconciliation store
  relies on this constraint to make concurrent upserts converge
- email is unique among active users (partial index on deleted_at IS NULL)
- Soft delete sets deleted_at; rows are only physically removed by the
  audited erasure operation in jnx_os.privacy.deletion
"""

from enum import Enum

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from jnx_os.db_base import Base
from jnx_os.models.base import TimestampMixin, generate_uuid


class UserRole(str, Enum):
    """Roles representable on a local user."""
    ADMIN = "admin"
    MEMBER = "member"


class User(Base, TimestampMixin):
    """
    Local user record synced from Clerk.

    Lifecycle: unknown -> active -> (updated, idempotent) -> soft-deleted.
    """

    __tablename__ = "users"

    # Internal Primary Key
    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="Internal UUID primary key"
    )

    # Clerk User ID - natural key for reconciliation
    clerk_user_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Clerk user ID - source of truth for authentication"
    )

    email = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Primary email address (from Clerk)"
    )

    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)

    role = Column(
        String(20),
        nullable=False,
        default=UserRole.MEMBER.value,
        comment="admin or member"
    )

    org_id = Column(
        String(36),
        ForeignKey("organizations.id"),
        nullable=True,
        index=True,
        comment="Organization the user belongs to; NULL for orgless users"
    )

    deleted_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Soft delete marker"
    )

    organization = relationship("Organization", back_populates="members")

    __table_args__ = (
        Index("ix_users_deleted_at", "deleted_at"),
        # One active user per email; soft-deleted rows may share it
        Index(
            "uq_users_active_email",
            "email",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, clerk_user_id={self.clerk_user_id}, role={self.role})>"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def to_summary(self) -> dict:
        """Serializable view used by API responses."""
        return {
            "user_id": self.id,
            "clerk_user_id": self.clerk_user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "org_id": self.org_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }
