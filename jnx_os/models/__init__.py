"""
Database models for JNX-OS identity data.

AuditLog and SystemEvent live beside their writers in jnx_os.platform.
"""

from jnx_os.models.base import TimestampMixin, generate_uuid
from jnx_os.models.organization import Organization
from jnx_os.models.user import User, UserRole

__all__ = [
    "TimestampMixin",
    "generate_uuid",
    "Organization",
    "User",
    "UserRole",
]
