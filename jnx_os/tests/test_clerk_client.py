"""
Tests for the Clerk Backend API client.

Responses are served by httpx.MockTransport; no network access.
"""

import httpx
import pytest

from jnx_os.integrations.clerk.client import ClerkBackendClient
from jnx_os.integrations.clerk.exceptions import (
    IdentityNotFoundError,
    IdentityProviderError,
    IdentityProviderNotConfiguredError,
    IdentityProviderUnavailableError,
    InvalidCredentialsError,
)


class TestRequests:
    def test_auth_header_and_base_url(self, clerk_client, clerk_api, clerk_user):
        clerk_api.on("GET", "/v1/users/user_1", json_body=clerk_user("user_1"))

        clerk_client.get_user("user_1")

        request = clerk_api.calls[0]
        assert request.headers["authorization"] == "Bearer sk_test_jnx"
        assert str(request.url) == "https://api.clerk.test/v1/users/user_1"

    def test_get_user_parses_primary_email(self, clerk_client, clerk_api):
        clerk_api.on("GET", "/v1/users/user_1", json_body={
            "id": "user_1",
            "email_addresses": [
                {"id": "idn_2", "email_address": "second@example.com"},
                {"id": "idn_1", "email_address": "primary@example.com"},
            ],
            "primary_email_address_id": "idn_1",
            "public_metadata": {"role": "admin"},
            "unknown_field": "ignored",
        })

        user = clerk_client.get_user("user_1")

        assert user.primary_email == "primary@example.com"
        assert user.metadata_role == "admin"

    def test_find_users_by_email(self, clerk_client, clerk_api, clerk_user):
        clerk_api.on("GET", "/v1/users", json_body=[clerk_user("user_1", email="a@example.com")])

        users = clerk_client.find_users_by_email("a@example.com")

        assert [u.id for u in users] == ["user_1"]
        assert clerk_api.calls[0].url.params["email_address"] == "a@example.com"

    def test_verify_password_rejection_is_false(self, clerk_client, clerk_api):
        clerk_api.on("POST", "/v1/users/user_1/verify_password", status_code=422,
                     json_body={"errors": [{"code": "incorrect_password"}]})

        assert clerk_client.verify_password("user_1", "wrong") is False

    def test_sign_in_token(self, clerk_client, clerk_api):
        clerk_api.on("POST", "/v1/sign_in_tokens", json_body={"id": "sit_1", "token": "tok", "url": None})

        token = clerk_client.create_sign_in_token("user_1")

        assert token.token == "tok"


class TestErrorMapping:
    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_unavailable(self, clerk_client, clerk_api, status_code):
        clerk_api.on("GET", "/v1/users/user_1", status_code=status_code)

        with pytest.raises(IdentityProviderUnavailableError) as exc_info:
            clerk_client.get_user("user_1")

        assert exc_info.value.status_code == status_code

    @pytest.mark.parametrize("status_code", [400, 422])
    def test_rejected(self, clerk_client, clerk_api, status_code):
        clerk_api.on("POST", "/v1/users", status_code=status_code, json_body={
            "errors": [{"code": "form_identifier_exists", "long_message": "That email address is taken."}],
        })

        with pytest.raises(InvalidCredentialsError) as exc_info:
            clerk_client.create_user("a@example.com", "pw")

        assert exc_info.value.code == "form_identifier_exists"
        assert exc_info.value.message == "That email address is taken."

    def test_not_found(self, clerk_client):
        with pytest.raises(IdentityNotFoundError):
            clerk_client.get_user("user_missing")

    def test_other_status(self, clerk_client, clerk_api):
        clerk_api.on("PATCH", "/v1/users/user_1/metadata", status_code=403)

        with pytest.raises(IdentityProviderError) as exc_info:
            clerk_client.update_public_metadata("user_1", {"role": "admin"})

        assert type(exc_info.value) is IdentityProviderError
        assert exc_info.value.status_code == 403

    def test_network_error(self):
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with ClerkBackendClient("sk_test", transport=httpx.MockTransport(_refuse)) as client:
            with pytest.raises(IdentityProviderUnavailableError):
                client.get_user("user_1")

    def test_timeout(self):
        def _slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with ClerkBackendClient("sk_test", transport=httpx.MockTransport(_slow)) as client:
            with pytest.raises(IdentityProviderUnavailableError):
                client.get_user("user_1")

    def test_not_configured(self):
        with ClerkBackendClient(None) as client:
            assert client.is_configured is False
            with pytest.raises(IdentityProviderNotConfiguredError):
                client.get_user("user_1")
