"""
PII redaction utilities.

Used before anything reaches a log sink or an audit row:
- Pattern redaction scrubs email addresses, phone numbers, SSNs and
  credit-card-like digit runs out of free text.
- Field redaction blanks any value whose key names a secret
  (password, token, api_key, ...).

Every function returns a new object; inputs are never mutated. Nested
structures are walked with cycle detection and a depth bound, so arbitrary
objects (including self-referencing ones) are safe to pass in.
"""

import re
from typing import Any, FrozenSet, Optional, Set

REDACTION_MARKER = "[REDACTED]"
CIRCULAR_MARKER = "[CIRCULAR]"
TRUNCATED_MARKER = "[TRUNCATED]"

MAX_DEPTH = 32

EMAIL_PATTERN = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
PHONE_PATTERN = re.compile(r"(\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
SSN_PATTERN = re.compile(r"\d{3}-\d{2}-\d{4}")
CREDIT_CARD_PATTERN = re.compile(r"\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}")

# Substring match against the lowercased key
SENSITIVE_FIELDS: FrozenSet[str] = frozenset({
    "password",
    "secret",
    "token",
    "api_key",
    "private_key",
    "ssn",
    "social_security",
    "credit_card",
    "card_number",
})

# Identifiers and timestamps pass through pattern redaction untouched
SAFE_FIELDS: FrozenSet[str] = frozenset({
    "id",
    "user_id",
    "org_id",
    "created_at",
    "updated_at",
})


def _mask_email(match: "re.Match[str]") -> str:
    local, _, domain = match.group(0).partition("@")
    if len(local) <= 2:
        return f"**@{domain}"
    return f"{local[:2]}***@{domain}"


def redact_email(text: str) -> str:
    """Mask email addresses, keeping the first two characters and the domain."""
    return EMAIL_PATTERN.sub(_mask_email, text)


def redact_phone(text: str) -> str:
    return PHONE_PATTERN.sub("***-***-****", text)


def redact_ssn(text: str) -> str:
    return SSN_PATTERN.sub("***-**-****", text)


def redact_credit_card(text: str) -> str:
    return CREDIT_CARD_PATTERN.sub("****-****-****-****", text)


def redact_text(text: str) -> str:
    """
    Redact all PII patterns from a string.

    Card numbers and SSNs go first so the looser phone pattern cannot
    consume part of them and leave the rest behind.
    """
    redacted = redact_credit_card(text)
    redacted = redact_ssn(redacted)
    redacted = redact_email(redacted)
    redacted = redact_phone(redacted)
    return redacted


def is_sensitive_field(key: str) -> bool:
    lower_key = key.lower()
    return any(term in lower_key for term in SENSITIVE_FIELDS)


def _walk(
    value: Any,
    seen: Set[int],
    depth: int,
    scrub_text: bool,
    scrub_fields: bool,
    key: Optional[str] = None,
) -> Any:
    if isinstance(value, str):
        if scrub_text and (key is None or key not in SAFE_FIELDS):
            return redact_text(value)
        return value

    if not isinstance(value, (dict, list, tuple)):
        return value

    if depth >= MAX_DEPTH:
        return TRUNCATED_MARKER

    marker = id(value)
    if marker in seen:
        return CIRCULAR_MARKER
    seen.add(marker)

    try:
        if isinstance(value, dict):
            result = {}
            for k, v in value.items():
                str_key = str(k)
                if scrub_fields and is_sensitive_field(str_key):
                    result[k] = REDACTION_MARKER
                else:
                    result[k] = _walk(v, seen, depth + 1, scrub_text, scrub_fields, str_key)
            return result

        items = [_walk(item, seen, depth + 1, scrub_text, scrub_fields) for item in value]
        return tuple(items) if isinstance(value, tuple) else items
    finally:
        seen.discard(marker)


def redact_sensitive_fields(obj: Any) -> Any:
    """Replace values of secret-named keys with [REDACTED], recursively."""
    return _walk(obj, set(), 0, scrub_text=False, scrub_fields=True)


def redact_object(obj: Any) -> Any:
    """
    Redact PII patterns from every string in a nested structure and blank
    secret-named fields.

    Values under SAFE_FIELDS keys are returned as-is.
    """
    return _walk(obj, set(), 0, scrub_text=True, scrub_fields=True)
