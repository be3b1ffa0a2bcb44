"""
Verification of Clerk session tokens.

Session tokens arrive either as a Bearer header or in the `__session`
cookie set by Clerk's frontend SDK. A token is accepted only when its RS256
signature matches a key from the instance JWKS, it was issued by the
configured Clerk frontend API, it is inside its validity window, and (when
the token names one) its authorized party is one of our own origins.

JNX-OS never mints tokens of its own.
"""

import logging
import time
from threading import Lock
from typing import Any, Dict, Iterable, Optional, Tuple, Type

import jwt
from jwt import PyJWKClient, PyJWKClientError
from jwt.exceptions import (
    ExpiredSignatureError,
    ImmatureSignatureError,
    InvalidIssuerError,
    InvalidTokenError,
    MissingRequiredClaimError,
)

from jnx_os.config.settings import Settings

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "iss", "exp", "iat"]

# First matching entry wins, so subclasses come before InvalidTokenError.
_ERROR_TABLE: Tuple[Tuple[Type[Exception], str, str], ...] = (
    (ExpiredSignatureError, "token_expired", "Session token has expired"),
    (ImmatureSignatureError, "token_not_yet_valid", "Session token is not valid yet"),
    (InvalidIssuerError, "invalid_issuer", "Session token was issued by another instance"),
    (MissingRequiredClaimError, "missing_claims", "Session token is missing a required claim"),
    (PyJWKClientError, "jwks_error", "No matching signing key in the instance JWKS"),
    (InvalidTokenError, "invalid_token", "Session token is invalid"),
)


class ClerkVerificationError(Exception):
    """Raised when a session token cannot be trusted."""

    def __init__(self, message: str, error_code: str = "verification_failed"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


def _translate(error: Exception) -> ClerkVerificationError:
    for error_type, code, message in _ERROR_TABLE:
        if isinstance(error, error_type):
            return ClerkVerificationError(message, error_code=code)
    return ClerkVerificationError(str(error))


def _origin(url: str) -> str:
    return url.rstrip("/")


class ClerkJWTVerifier:
    """
    Verifies Clerk session JWTs against the instance JWKS.

    The JWKS client is rebuilt once an hour so rotated keys are picked up
    without a restart; PyJWKClient also refetches on an unknown `kid`.
    """

    JWKS_CACHE_SECONDS = 3600
    CLOCK_SKEW_SECONDS = 60

    def __init__(
        self,
        issuer: Optional[str],
        authorized_parties: Optional[Iterable[str]] = None,
        jwks_url: Optional[str] = None,
    ):
        if not issuer:
            raise ClerkVerificationError(
                "CLERK_ISSUER_URL is required to verify session tokens",
                error_code="config_error",
            )

        self.issuer = issuer.rstrip("/")
        self.jwks_url = jwks_url or f"{self.issuer}/.well-known/jwks.json"
        self.authorized_parties = frozenset(_origin(p) for p in authorized_parties or ())

        self._jwks: Optional[PyJWKClient] = None
        self._jwks_built_at = 0.0
        self._jwks_lock = Lock()

        logger.info(
            "Session token verification enabled",
            extra={"issuer": self.issuer, "jwks_url": self.jwks_url},
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClerkJWTVerifier":
        """Verifier that accepts tokens minted for the app URL or any CORS origin."""
        return cls(
            issuer=settings.clerk_issuer_url,
            authorized_parties=[settings.public_app_url, *settings.cors_origins],
        )

    def _get_jwks_client(self) -> PyJWKClient:
        with self._jwks_lock:
            now = time.time()
            if self._jwks is None or now - self._jwks_built_at > self.JWKS_CACHE_SECONDS:
                self._jwks = PyJWKClient(
                    self.jwks_url, cache_keys=True, lifespan=self.JWKS_CACHE_SECONDS
                )
                self._jwks_built_at = now
                logger.debug("JWKS client rebuilt", extra={"jwks_url": self.jwks_url})
            return self._jwks

    def _check_authorized_party(self, claims: Dict[str, Any]) -> None:
        azp = claims.get("azp")
        if azp and self.authorized_parties and _origin(azp) not in self.authorized_parties:
            logger.warning("Session token from unexpected origin", extra={"azp": azp})
            raise ClerkVerificationError(
                "Session token was issued for another origin",
                error_code="invalid_authorized_party",
            )

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Return the verified claims of a session token.

        A leading "Bearer " is tolerated so raw header values can be passed
        straight through.

        Raises:
            ClerkVerificationError: with an error_code naming the failed check
        """
        if token and token.startswith("Bearer "):
            token = token[len("Bearer "):]
        if not token:
            raise ClerkVerificationError("Session token is required", error_code="missing_token")

        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                issuer=self.issuer,
                options={"verify_aud": False, "require": REQUIRED_CLAIMS},
                leeway=self.CLOCK_SKEW_SECONDS,
            )
        except (InvalidTokenError, PyJWKClientError) as e:
            error = _translate(e)
            logger.warning(
                "Session token rejected",
                extra={"error_code": error.error_code, "detail": str(e)},
            )
            raise error from e

        self._check_authorized_party(claims)
        logger.debug("Session token verified", extra={"sub": claims["sub"], "sid": claims.get("sid")})
        return claims
