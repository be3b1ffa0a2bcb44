"""
Tests for /api/system/health and /api/users/{clerk_user_id}.
"""

from jnx_os.database import session as db_session_module
from jnx_os.models.user import User
from jnx_os.platform.system_events import SystemEvent
from jnx_os.services import health_service
from jnx_os.services.identity_store import IdentityStore
from jnx_os.services.provisioning import provision_user


def _provision(db_session, clerk_user_id="user_1", email="a@example.com", role=None, first_name="Ada"):
    result = provision_user(IdentityStore(db_session), clerk_user_id, email, first_name=first_name, role=role)
    db_session.commit()
    return result


class TestSystemHealth:
    def test_anonymous_report(self, client, db_session):
        _provision(db_session)

        response = client.get("/api/system/health")

        assert response.status_code == 200
        body = response.json()
        assert body["connection"]["status"] == "connected"
        assert body["identity_provider"] == {"configured": True, "status": "anonymous"}
        assert body["current_user"] is None
        assert body["current_org"] is None
        assert body["active_users"] == 1
        assert [log["action"] for log in body["recent_audit_logs"]] == ["user.signup"]

    def test_authenticated_report(self, client, auth_headers, db_session):
        result = _provision(db_session, role="admin")

        response = client.get("/api/system/health", headers=auth_headers("user_1"))

        body = response.json()
        assert body["identity_provider"]["status"] == "authenticated"
        assert body["current_user"] == {
            "user_id": result.user.id,
            "email": "a@example.com",
            "role": "admin",
            "org_id": result.organization.id,
        }
        assert body["current_org"] == {"org_id": result.organization.id, "name": "Ada's Organization"}

    def test_authenticated_without_local_user(self, client, auth_headers):
        body = client.get("/api/system/health", headers=auth_headers("user_unknown")).json()

        assert body["identity_provider"]["status"] == "authenticated"
        assert body["current_user"] is None

    def test_degraded_when_table_missing(self, client, db_engine):
        SystemEvent.__table__.drop(db_engine)

        body = client.get("/api/system/health").json()

        assert body["connection"]["status"] == "degraded"
        assert body["connection"]["missing_tables"] == ["system_events"]
        assert body["recent_audit_logs"] == []

    def test_recent_audit_logs_capped(self, client, db_session):
        for n in range(12):
            _provision(db_session, clerk_user_id=f"user_{n}", email=f"u{n}@example.com")

        body = client.get("/api/system/health").json()

        assert body["active_users"] == 12
        assert len(body["recent_audit_logs"]) == 10

    def test_failure_returns_disconnected(self, client, monkeypatch):
        def _boom(self, session):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(health_service.HealthService, "build_report", _boom)

        response = client.get("/api/system/health")

        assert response.status_code == 500
        body = response.json()
        assert body["connection"]["status"] == "disconnected"
        assert body["active_users"] == 0

    def test_database_not_configured(self, app, client, monkeypatch):
        def _unconfigured():
            raise db_session_module.DatabaseNotConfiguredError("DATABASE_URL environment variable is not set")

        app.dependency_overrides.pop(db_session_module.get_optional_db_session)
        monkeypatch.setattr(db_session_module, "get_session_factory", _unconfigured)

        response = client.get("/api/system/health")

        assert response.status_code == 500
        assert response.json()["connection"] == {"status": "disconnected", "message": "Database not configured"}


class TestUserLookup:
    def test_self_lookup(self, client, auth_headers, db_session):
        _provision(db_session)

        response = client.get("/api/users/user_1", headers=auth_headers("user_1"))

        assert response.status_code == 200
        assert response.json()["email"] == "a@example.com"
        assert response.json()["clerk_user_id"] == "user_1"

    def test_admin_may_look_up_others(self, client, auth_headers, db_session):
        _provision(db_session)

        response = client.get("/api/users/user_1", headers=auth_headers("user_admin", role="admin"))

        assert response.status_code == 200

    def test_member_may_not_look_up_others(self, client, auth_headers, db_session):
        _provision(db_session)

        response = client.get("/api/users/user_1", headers=auth_headers("user_2"))

        assert response.status_code == 403

    def test_unknown_user(self, client, auth_headers):
        response = client.get("/api/users/user_1", headers=auth_headers("user_1"))

        assert response.status_code == 404
        assert response.json()["detail"] == "User not found"

    def test_soft_deleted_user_not_found(self, client, auth_headers, db_session):
        user = _provision(db_session).user
        IdentityStore(db_session).soft_delete_user(user)
        db_session.commit()

        response = client.get("/api/users/user_1", headers=auth_headers("user_admin", role="admin"))

        assert response.status_code == 404
        assert db_session.query(User).count() == 1

    def test_anonymous_rejected(self, client):
        response = client.get("/api/users/user_1")

        assert response.status_code == 401
