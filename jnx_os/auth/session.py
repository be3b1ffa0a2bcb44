"""
Session context extracted from verified Clerk session claims.

The session token template includes the user's email, names and
public_metadata (surfaced as the `metadata` claim), so most requests can be
served and the fallback sync can provision a user without a Backend API
round trip.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Optional[str] = None


class ClerkSessionClaims(BaseModel):
    """
    Pydantic model for the Clerk session claims JNX-OS reads.

    Unknown claims are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    sub: str = Field(..., description="Clerk user ID (clerk_user_id)")
    sid: Optional[str] = Field(None, description="Session ID")
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)


@dataclass(frozen=True)
class SessionContext:
    """Authenticated caller identity attached to request.state.session."""

    clerk_user_id: str
    session_id: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "SessionContext":
        parsed = ClerkSessionClaims.model_validate(claims)
        return cls(
            clerk_user_id=parsed.sub,
            session_id=parsed.sid,
            role=parsed.metadata.role,
            email=parsed.email,
            first_name=parsed.first_name,
            last_name=parsed.last_name,
        )
