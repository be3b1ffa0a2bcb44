"""
Pydantic models for Clerk user, organization and membership objects.

These shapes are shared by webhook payloads and Backend API responses.
Unknown fields are ignored so new Clerk attributes never break parsing.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClerkEmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    email_address: str


class ClerkUserData(BaseModel):
    """A Clerk user object."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email_addresses: List[ClerkEmailAddress] = Field(default_factory=list)
    primary_email_address_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    public_metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def primary_email(self) -> Optional[str]:
        """
        Address whose id matches primary_email_address_id, else the first one.
        """
        if self.primary_email_address_id:
            for address in self.email_addresses:
                if address.id == self.primary_email_address_id:
                    return address.email_address
        if self.email_addresses:
            return self.email_addresses[0].email_address
        return None

    @property
    def metadata_role(self) -> Optional[str]:
        role = self.public_metadata.get("role")
        return role if isinstance(role, str) else None


class ClerkDeletedObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    deleted: bool = True


class ClerkOrganizationData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str


class ClerkOrganizationRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class ClerkPublicUserData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: Optional[str] = None


class ClerkMembershipData(BaseModel):
    """An organization membership; role is e.g. "org:admin" or "admin"."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    organization: ClerkOrganizationRef
    public_user_data: ClerkPublicUserData = Field(default_factory=ClerkPublicUserData)
    role: Optional[str] = None


class ClerkSignInToken(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    token: str
    url: Optional[str] = None
