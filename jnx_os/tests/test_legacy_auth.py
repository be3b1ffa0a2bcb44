"""
Tests for the legacy email/password endpoints.

The Clerk Backend API is scripted through FakeClerkAPI; passwords must only
ever travel to Clerk.
"""

import json

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from jnx_os.api.routes import auth as auth_routes
from jnx_os.models.organization import Organization
from jnx_os.models.user import User
from jnx_os.platform.audit import AuditLog
from jnx_os.platform.system_events import SystemEvent
from jnx_os.services.identity_store import IdentityStore

SIGN_IN_TOKEN = {"id": "sit_1", "token": "tok_abc", "url": "https://accounts.example.com/sign-in?token=tok_abc"}


def _actions(db_session):
    return sorted(log.action for log in db_session.query(AuditLog).all())


@pytest.fixture
def registered(clerk_api, clerk_user):
    """A Clerk account for a@example.com whose password is 'correct horse'."""
    clerk_api.on("GET", "/v1/users", json_body=[clerk_user("user_1", email="a@example.com", first_name="Ada")])

    def _verify(request):
        password = json.loads(request.content)["password"]
        if password == "correct horse":
            return _json(200, {"verified": True})
        return _json(422, {"errors": [{"code": "incorrect_password", "message": "Password is incorrect"}]})

    clerk_api.on_call("POST", "/v1/users/user_1/verify_password", _verify)
    clerk_api.on("POST", "/v1/sign_in_tokens", json_body=SIGN_IN_TOKEN)
    return clerk_api


def _json(status_code, body):
    return httpx.Response(status_code, json=body)


class TestSignup:
    def test_missing_fields(self, client, clerk_api):
        response = client.post("/api/auth/signup", json={"email": "a@example.com"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Email and password are required"
        assert clerk_api.calls == []

    def test_creates_clerk_user_and_local_mirror(self, client, clerk_api, clerk_user, db_session):
        clerk_api.on("POST", "/v1/users", json_body=clerk_user("user_new", email="new@example.com", first_name="Ada", last_name=None))

        response = client.post(
            "/api/auth/signup",
            json={"email": "new@example.com", "password": "s3cret-pass", "name": "Ada"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["clerk_user_id"] == "user_new"
        assert body["setup_pending"] is False
        assert body["user"]["email"] == "new@example.com"
        assert body["organization"]["name"] == "Ada's Organization"
        assert _actions(db_session) == ["user.signup"]

        sent = json.loads(clerk_api.calls[0].content)
        assert sent == {"email_address": ["new@example.com"], "password": "s3cret-pass", "first_name": "Ada"}

    def test_org_named_after_email_without_name(self, client, clerk_api, clerk_user):
        clerk_api.on("POST", "/v1/users", json_body=clerk_user("user_new", email="new@example.com", first_name=None, last_name=None))

        response = client.post("/api/auth/signup", json={"email": "new@example.com", "password": "s3cret-pass"})

        assert response.json()["organization"]["name"] == "new@example.com's Organization"

    def test_rejected_by_clerk(self, client, clerk_api, db_session):
        clerk_api.on("POST", "/v1/users", status_code=422, json_body={"errors": [{"code": "form_password_pwned"}]})

        response = client.post("/api/auth/signup", json={"email": "new@example.com", "password": "password"})

        assert response.status_code == 400
        assert db_session.query(User).count() == 0

    def test_provider_outage(self, client, clerk_api):
        clerk_api.on("POST", "/v1/users", status_code=503)

        response = client.post("/api/auth/signup", json={"email": "new@example.com", "password": "s3cret-pass"})

        assert response.status_code == 503

    def test_local_failure_still_created(self, client, clerk_api, clerk_user, db_session, monkeypatch):
        clerk_api.on("POST", "/v1/users", json_body=clerk_user("user_new", email="new@example.com"))

        def _fail(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("database down"))

        monkeypatch.setattr(auth_routes, "provision_user", _fail)

        response = client.post("/api/auth/signup", json={"email": "new@example.com", "password": "s3cret-pass"})

        assert response.status_code == 201
        assert response.json() == {"clerk_user_id": "user_new", "setup_pending": True}
        assert db_session.query(Organization).count() == 0

    def test_email_held_by_other_user_leaves_setup_pending(self, client, clerk_api, clerk_user, db_session):
        IdentityStore(db_session).upsert_user("user_old", email="new@example.com")
        db_session.commit()
        clerk_api.on("POST", "/v1/users", json_body=clerk_user("user_new", email="new@example.com"))

        response = client.post("/api/auth/signup", json={"email": "new@example.com", "password": "s3cret-pass"})

        assert response.status_code == 201
        assert response.json() == {"clerk_user_id": "user_new", "setup_pending": True}
        assert db_session.query(User).filter_by(clerk_user_id="user_new").count() == 0


class TestLogin:
    def test_success_provisions_and_audits(self, client, registered, db_session):
        response = client.post("/api/auth/login", json={"email": "a@example.com", "password": "correct horse"})

        assert response.status_code == 200
        body = response.json()
        assert body["sign_in_token"] == "tok_abc"
        assert body["setup_pending"] is False
        assert body["user"]["clerk_user_id"] == "user_1"
        assert _actions(db_session) == ["auth.login", "user.signup"]

        login = db_session.query(AuditLog).filter_by(action="auth.login").one()
        assert login.target == "session"
        assert login.event_metadata == {"clerk_user_id": "user_1", "method": "password"}

    def test_wrong_password(self, client, registered, db_session):
        response = client.post("/api/auth/login", json={"email": "a@example.com", "password": "wrong"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"
        assert db_session.query(AuditLog).count() == 0

    def test_unknown_email_same_response(self, client, clerk_api):
        clerk_api.on("GET", "/v1/users", json_body=[])

        response = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "anything"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_provider_outage(self, client, clerk_api):
        clerk_api.on("GET", "/v1/users", status_code=502)

        response = client.post("/api/auth/login", json={"email": "a@example.com", "password": "correct horse"})

        assert response.status_code == 503

    def test_deactivated_account(self, client, registered, db_session):
        store = IdentityStore(db_session)
        store.soft_delete_user(store.upsert_user("user_1", email="a@example.com").record)
        db_session.commit()

        response = client.post("/api/auth/login", json={"email": "a@example.com", "password": "correct horse"})

        assert response.status_code == 403

    def test_pending_setup_still_audited(self, client, registered, db_session):
        """A login whose mirror cannot be created yet still leaves an auth.login row."""
        IdentityStore(db_session).upsert_user("user_other", email="a@example.com")
        db_session.commit()

        response = client.post("/api/auth/login", json={"email": "a@example.com", "password": "correct horse"})

        assert response.status_code == 200
        assert response.json()["setup_pending"] is True
        login = db_session.query(AuditLog).filter_by(action="auth.login").one()
        assert login.actor_user_id is None
        assert login.org_id is None
        assert login.event_metadata["clerk_user_id"] == "user_1"
        failure = db_session.query(SystemEvent).filter_by(event_type="fallback_sync.failed").one()
        assert failure.event_metadata["reason"] == "invalid_email"
