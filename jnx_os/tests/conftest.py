"""
Root test configuration and fixtures.

Provides:
- db_engine / db_session: fresh in-memory SQLite database per test
- settings: isolated Settings (nothing read from the environment)
- fake_verifier: token -> claims table standing in for Clerk JWKS verification
- clerk_api: scripted Clerk Backend API served through httpx.MockTransport
- client: TestClient for the full app, sharing db_session with the test
- webhook helpers: payload builders and a Svix-signed sender
"""

import json
import os
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from svix.webhooks import Webhook

from jnx_os.app import create_app
from jnx_os.auth.clerk_verifier import ClerkVerificationError
from jnx_os.config.settings import Settings
from jnx_os.database.session import create_db_engine, get_db_session, get_optional_db_session
from jnx_os.db_base import Base
from jnx_os.integrations.clerk.client import ClerkBackendClient
from jnx_os.security.rate_limit import RateLimiterRegistry

# Set test environment
os.environ.setdefault("ENV", "test")

WEBHOOK_SECRET = "whsec_MfKQ9r8GKYqrTwjUPD8ILPZIo2LaLaSw"
CLERK_API_URL = "https://api.clerk.test/v1"


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_engine():
    """SQLite in-memory engine with every identity table created."""
    engine = create_db_engine("sqlite:///:memory:")

    from jnx_os import models  # noqa: F401 - users, organizations
    from jnx_os.platform import audit, system_events  # noqa: F401 - audit_logs, system_events

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=db_engine,
    )
    session = SessionLocal()
    yield session
    session.close()


# =============================================================================
# Settings and collaborators
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(
        env="test",
        database_url="sqlite:///:memory:",
        clerk_secret_key="sk_test_jnx",
        clerk_publishable_key="pk_test_jnx",
        clerk_issuer_url="https://test.clerk.accounts.dev",
        clerk_api_url=CLERK_API_URL,
        clerk_webhook_secret=WEBHOOK_SECRET,
        cors_origins=["http://testserver"],
        support_email="support@example.com",
        setup_max_attempts=3,
        setup_retry_interval_seconds=5,
    )


class FakeVerifier:
    """Maps opaque test tokens to session claims."""

    def __init__(self):
        self.tokens: Dict[str, Dict[str, Any]] = {}

    def issue(
        self,
        clerk_user_id: str,
        role: Optional[str] = None,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> str:
        token = f"token_{clerk_user_id}"
        claims: Dict[str, Any] = {"sub": clerk_user_id, "sid": f"sess_{clerk_user_id}"}
        if role is not None:
            claims["metadata"] = {"role": role}
        if email is not None:
            claims["email"] = email
        if first_name is not None:
            claims["first_name"] = first_name
        if last_name is not None:
            claims["last_name"] = last_name
        self.tokens[token] = claims
        return token

    def verify_token(self, token: str) -> Dict[str, Any]:
        if token not in self.tokens:
            raise ClerkVerificationError("Invalid token", error_code="invalid_token")
        return self.tokens[token]


@pytest.fixture
def fake_verifier() -> FakeVerifier:
    return FakeVerifier()


class FakeClerkAPI:
    """
    Scripted Clerk Backend API.

    Register responses with `on(method, path, status, json)`; every request
    is recorded in `calls`. Unregistered routes answer 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[httpx.Request] = []

    def on(self, method: str, path: str, status_code: int = 200, json_body: Any = None) -> None:
        self.routes[(method, path)] = (status_code, json_body)

    def on_call(self, method: str, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[(method, path)] = handler

    def paths(self) -> List[Tuple[str, str]]:
        return [(request.method, request.url.path) for request in self.calls]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"errors": [{"code": "resource_not_found"}]})
        if callable(route):
            return route(request)
        status_code, body = route
        return httpx.Response(status_code, json=body if body is not None else {})


@pytest.fixture
def clerk_api() -> FakeClerkAPI:
    return FakeClerkAPI()


@pytest.fixture
def clerk_client(clerk_api) -> Generator[ClerkBackendClient, None, None]:
    client = ClerkBackendClient(
        "sk_test_jnx",
        base_url=CLERK_API_URL,
        transport=httpx.MockTransport(clerk_api),
    )
    yield client
    client.close()


@pytest.fixture
def rate_limiters() -> RateLimiterRegistry:
    return RateLimiterRegistry()


@pytest.fixture
def app(settings, fake_verifier, clerk_client, rate_limiters, db_session):
    application = create_app(
        settings=settings,
        verifier=fake_verifier,
        clerk_client=clerk_client,
        rate_limiters=rate_limiters,
    )

    def _override_db_session():
        yield db_session

    application.dependency_overrides[get_db_session] = _override_db_session
    application.dependency_overrides[get_optional_db_session] = _override_db_session
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def auth_headers(fake_verifier):
    """Factory for Authorization headers carrying a test session token."""

    def _headers(clerk_user_id: str, **claims) -> Dict[str, str]:
        return {"Authorization": f"Bearer {fake_verifier.issue(clerk_user_id, **claims)}"}

    return _headers


# =============================================================================
# Clerk webhook helpers
# =============================================================================

_DERIVED = object()


def clerk_user_data(
    clerk_user_id: str,
    email: Any = _DERIVED,
    first_name: Optional[str] = "Jane",
    last_name: Optional[str] = "Doe",
    role: Optional[str] = None,
) -> Dict[str, Any]:
    """Clerk user object; the email defaults to one derived from the id."""
    if email is _DERIVED:
        email = f"{clerk_user_id}@example.com"
    addresses = [{"id": "idn_primary", "email_address": email}] if email else []
    return {
        "id": clerk_user_id,
        "email_addresses": addresses,
        "primary_email_address_id": "idn_primary" if email else None,
        "first_name": first_name,
        "last_name": last_name,
        "public_metadata": {"role": role} if role else {},
    }


@pytest.fixture
def user_event():
    """Builds a user.* webhook payload."""

    def _build(event_type: str = "user.created", clerk_user_id: str = "user_1", **fields) -> Dict[str, Any]:
        if event_type == "user.deleted":
            return {"type": event_type, "object": "event", "data": {"id": clerk_user_id, "deleted": True}}
        return {"type": event_type, "object": "event", "data": clerk_user_data(clerk_user_id, **fields)}

    return _build


@pytest.fixture
def sign_webhook():
    """Svix headers for a raw body, signed with the test secret."""

    def _sign(
        body: bytes,
        msg_id: str = "msg_test",
        timestamp: Optional[datetime] = None,
        secret: str = WEBHOOK_SECRET,
    ) -> Dict[str, str]:
        timestamp = timestamp or datetime.now(tz=timezone.utc)
        signature = Webhook(secret).sign(msg_id, timestamp, body.decode())
        return {
            "svix-id": msg_id,
            "svix-timestamp": str(int(timestamp.timestamp())),
            "svix-signature": signature,
            "content-type": "application/json",
        }

    return _sign


@pytest.fixture
def send_webhook(client, sign_webhook):
    """POST a payload to the Clerk webhook endpoint with valid Svix headers."""
    counter = {"n": 0}

    def _send(payload: Dict[str, Any], msg_id: Optional[str] = None):
        counter["n"] += 1
        body = json.dumps(payload).encode()
        headers = sign_webhook(body, msg_id=msg_id or f"msg_{counter['n']}_{int(time.time())}")
        return client.post("/api/webhooks/clerk", content=body, headers=headers)

    return _send


@pytest.fixture
def clerk_user():
    """Builds a Clerk user object as returned by the Backend API."""
    return clerk_user_data
