"""
Typed Clerk webhook events.

A verified webhook body is parsed into exactly one variant, discriminated on
the `type` field. Types JNX-OS does not handle become UnhandledEvent and are
acknowledged without side effects.
"""

from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from jnx_os.integrations.clerk.models import (
    ClerkDeletedObject,
    ClerkMembershipData,
    ClerkOrganizationData,
    ClerkUserData,
)
from jnx_os.services.errors import ValidationError


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore")


class UserCreatedEvent(_Event):
    type: Literal["user.created"]
    data: ClerkUserData


class UserUpdatedEvent(_Event):
    type: Literal["user.updated"]
    data: ClerkUserData


class UserDeletedEvent(_Event):
    type: Literal["user.deleted"]
    data: ClerkDeletedObject


class OrganizationCreatedEvent(_Event):
    type: Literal["organization.created"]
    data: ClerkOrganizationData


class OrganizationUpdatedEvent(_Event):
    type: Literal["organization.updated"]
    data: ClerkOrganizationData


class MembershipCreatedEvent(_Event):
    type: Literal["organizationMembership.created"]
    data: ClerkMembershipData


class MembershipUpdatedEvent(_Event):
    type: Literal["organizationMembership.updated"]
    data: ClerkMembershipData


class UnhandledEvent(_Event):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


HandledEvent = Annotated[
    Union[
        UserCreatedEvent,
        UserUpdatedEvent,
        UserDeletedEvent,
        OrganizationCreatedEvent,
        OrganizationUpdatedEvent,
        MembershipCreatedEvent,
        MembershipUpdatedEvent,
    ],
    Field(discriminator="type"),
]

WebhookEvent = Union[
    UserCreatedEvent,
    UserUpdatedEvent,
    UserDeletedEvent,
    OrganizationCreatedEvent,
    OrganizationUpdatedEvent,
    MembershipCreatedEvent,
    MembershipUpdatedEvent,
    UnhandledEvent,
]

HANDLED_EVENT_TYPES = frozenset({
    "user.created",
    "user.updated",
    "user.deleted",
    "organization.created",
    "organization.updated",
    "organizationMembership.created",
    "organizationMembership.updated",
})

_handled_adapter: TypeAdapter = TypeAdapter(HandledEvent)


def parse_webhook_event(payload: Dict[str, Any]) -> WebhookEvent:
    """
    Parse a verified webhook body.

    Raises:
        ValidationError: The body has no type, or a handled type whose data
            does not match the Clerk object shape
    """
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")

    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise ValidationError("Webhook payload has no event type", field="type")

    if event_type not in HANDLED_EVENT_TYPES:
        data = payload.get("data")
        return UnhandledEvent(type=event_type, data=data if isinstance(data, dict) else {})

    try:
        return _handled_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed {event_type} payload: {e.error_count()} error(s)")
