"""
Organization model: a tenant/workspace.

Organizations either mirror a Clerk organization (clerk_org_id set) or are
provisioned locally as a user's personal workspace (clerk_org_id NULL).
Organizations are never deleted; an organization may exist with zero members.
"""

from sqlalchemy import Column, String, Index
from sqlalchemy.orm import relationship

from jnx_os.db_base import Base
from jnx_os.models.base import TimestampMixin, generate_uuid


class Organization(Base, TimestampMixin):
    """Tenant entity users belong to."""

    __tablename__ = "organizations"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="Internal UUID primary key"
    )

    # Clerk Organization ID (external reference). NULLs never collide.
    clerk_org_id = Column(
        String(255),
        nullable=True,
        unique=True,
        index=True,
        comment="Clerk Organization ID, NULL for locally provisioned orgs"
    )

    name = Column(
        String(255),
        nullable=False,
        comment="Display name of the organization"
    )

    members = relationship("User", back_populates="organization", lazy="select")

    __table_args__ = (
        Index("ix_organizations_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name}, clerk_org_id={self.clerk_org_id})>"

    def to_summary(self) -> dict:
        return {
            "org_id": self.id,
            "clerk_org_id": self.clerk_org_id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
