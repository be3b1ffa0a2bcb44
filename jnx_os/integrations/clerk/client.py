"""
Clerk Backend API client.

This client handles:
- User creation and lookup for the legacy email/password endpoints
- Password verification and sign-in token issuance
- Public metadata updates (role changes from the admin console)
- Fetching a user's email when session claims do not carry it

Documentation: https://clerk.com/docs/reference/backend-api

SECURITY:
- The secret key must never be logged
- Passwords are forwarded to Clerk and never stored or logged locally
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from jnx_os.integrations.clerk.exceptions import (
    IdentityNotFoundError,
    IdentityProviderError,
    IdentityProviderNotConfiguredError,
    IdentityProviderUnavailableError,
    InvalidCredentialsError,
)
from jnx_os.integrations.clerk.models import ClerkSignInToken, ClerkUserData

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.clerk.com/v1"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0


class ClerkBackendClient:
    """
    Synchronous client for the Clerk Backend API.

    Pass `transport` to route requests somewhere other than the network
    (httpx.MockTransport in tests).
    """

    def __init__(
        self,
        secret_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._secret_key = secret_key
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {secret_key or ''}",
            },
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._secret_key)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ClerkBackendClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make an HTTP request to the Clerk Backend API.

        Raises:
            IdentityProviderNotConfiguredError: No secret key
            IdentityProviderUnavailableError: Network error, timeout, 429 or 5xx
            InvalidCredentialsError: 400/422 rejections
            IdentityNotFoundError: 404
            IdentityProviderError: Anything else
        """
        if not self.is_configured:
            raise IdentityProviderNotConfiguredError()

        try:
            response = self._client.request(method, endpoint, json=json, params=params)
        except httpx.TimeoutException as e:
            logger.error("Clerk API timeout", extra={"endpoint": endpoint, "error": str(e)})
            raise IdentityProviderUnavailableError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error("Clerk API connection error", extra={"endpoint": endpoint, "error": str(e)})
            raise IdentityProviderUnavailableError(f"Connection error: {e}")

        if response.status_code < 400:
            if response.status_code == 204:
                return {}
            return response.json()

        error_body: Dict[str, Any] = {}
        try:
            error_body = response.json()
        except ValueError:
            error_body = {}
        errors = error_body.get("errors") or [{}]
        first_error = errors[0] if isinstance(errors, list) and errors else {}
        code = first_error.get("code") if isinstance(first_error, dict) else None
        message = (
            first_error.get("long_message") or first_error.get("message")
            if isinstance(first_error, dict) else None
        ) or f"Clerk API error {response.status_code}"

        log_extra = {"status_code": response.status_code, "endpoint": endpoint, "error_code": code}

        if response.status_code == 429 or response.status_code >= 500:
            logger.error("Clerk API unavailable", extra=log_extra)
            raise IdentityProviderUnavailableError(
                message, status_code=response.status_code, code=code, response=error_body
            )
        if response.status_code in (400, 422):
            logger.info("Clerk API rejected request", extra=log_extra)
            raise InvalidCredentialsError(message, status_code=response.status_code, code=code)
        if response.status_code == 404:
            raise IdentityNotFoundError(message, code=code)

        logger.error("Clerk API error", extra=log_extra)
        raise IdentityProviderError(
            message, status_code=response.status_code, code=code, response=error_body
        )

    def create_user(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> ClerkUserData:
        body: Dict[str, Any] = {"email_address": [email], "password": password}
        if first_name:
            body["first_name"] = first_name
        if last_name:
            body["last_name"] = last_name
        data = self._request("POST", "/users", json=body)
        return ClerkUserData.model_validate(data)

    def get_user(self, clerk_user_id: str) -> ClerkUserData:
        data = self._request("GET", f"/users/{clerk_user_id}")
        return ClerkUserData.model_validate(data)

    def find_users_by_email(self, email: str) -> List[ClerkUserData]:
        data = self._request("GET", "/users", params={"email_address": email})
        items = data.get("data", []) if isinstance(data, dict) else data
        return [ClerkUserData.model_validate(item) for item in items]

    def verify_password(self, clerk_user_id: str, password: str) -> bool:
        """
        Check a password against Clerk.

        Returns False when Clerk rejects it; other failures propagate.
        """
        try:
            data = self._request(
                "POST", f"/users/{clerk_user_id}/verify_password", json={"password": password}
            )
        except InvalidCredentialsError:
            return False
        return bool(data.get("verified"))

    def create_sign_in_token(self, clerk_user_id: str, expires_in_seconds: int = 300) -> ClerkSignInToken:
        data = self._request(
            "POST",
            "/sign_in_tokens",
            json={"user_id": clerk_user_id, "expires_in_seconds": expires_in_seconds},
        )
        return ClerkSignInToken.model_validate(data)

    def update_public_metadata(self, clerk_user_id: str, public_metadata: Dict[str, Any]) -> ClerkUserData:
        """Merge keys into public_metadata (Clerk deep-merges the PATCH)."""
        data = self._request(
            "PATCH",
            f"/users/{clerk_user_id}/metadata",
            json={"public_metadata": public_metadata},
        )
        return ClerkUserData.model_validate(data)
