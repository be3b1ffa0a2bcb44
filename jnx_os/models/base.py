"""
Base mixins and shared column types for database models.

Provides common functionality:
- TimestampMixin: created_at, updated_at timestamps
- generate_uuid: UUID generation for primary keys
- JSONType: JSON column that becomes JSONB on PostgreSQL
- Metadata: the structured-but-open type for metadata blobs
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Union

from sqlalchemy import JSON, Column, DateTime
from sqlalchemy.dialects.postgresql import JSONB

# Use JSON with PostgreSQL variant for JSONB - allows SQLite in tests
JSONType = JSON().with_variant(JSONB(), "postgresql")

JSONScalar = Union[str, int, float, bool, None]
MetadataValue = Union[JSONScalar, List[JSONScalar], Dict[str, JSONScalar]]
Metadata = Dict[str, MetadataValue]


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        comment="Timestamp when record was last updated"
    )
