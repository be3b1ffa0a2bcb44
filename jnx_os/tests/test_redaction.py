"""
Tests for PII redaction.

Property tests check that generated emails, phone numbers and card numbers
never survive redaction verbatim; example tests pin down field handling,
cycle detection and the depth bound.
"""

import copy

from hypothesis import given, strategies as st

from jnx_os.privacy.redaction import (
    CIRCULAR_MARKER,
    MAX_DEPTH,
    REDACTION_MARKER,
    TRUNCATED_MARKER,
    is_sensitive_field,
    redact_email,
    redact_object,
    redact_sensitive_fields,
    redact_text,
)

lowercase = "abcdefghijklmnopqrstuvwxyz"

emails = st.builds(
    lambda local, domain, tld: f"{local}@{domain}.{tld}",
    st.text(alphabet=lowercase + "0123456789._", min_size=3, max_size=16),
    st.text(alphabet=lowercase, min_size=2, max_size=12),
    st.text(alphabet=lowercase, min_size=2, max_size=4),
)

phones = st.builds(
    lambda a, b, c: f"{a}-{b}-{c}",
    st.integers(100, 999),
    st.integers(100, 999),
    st.integers(1000, 9999),
)

card_numbers = st.text(alphabet="0123456789", min_size=16, max_size=16)


class TestPatternRedaction:
    @given(email=emails)
    def test_email_never_verbatim(self, email):
        assert email not in redact_text(f"contact {email} today")

    @given(phone=phones)
    def test_phone_never_verbatim(self, phone):
        assert phone not in redact_text(f"call {phone}")

    @given(number=card_numbers)
    def test_card_number_never_verbatim(self, number):
        assert number not in redact_text(f"card {number} on file")

    def test_email_mask_keeps_domain(self):
        assert redact_email("jane.doe@example.com") == "ja***@example.com"
        assert redact_email("jo@example.com") == "**@example.com"

    def test_ssn(self):
        assert redact_text("ssn 123-45-6789") == "ssn ***-**-****"

    def test_card_before_phone(self):
        redacted = redact_text("4111 1111 1111 1111")

        assert redacted == "****-****-****-****"

    @given(text=st.text(alphabet=lowercase + " ", max_size=50))
    def test_plain_text_unchanged(self, text):
        assert redact_text(text) == text


class TestFieldRedaction:
    @given(key=st.sampled_from(["password", "API_KEY", "access_token", "client_secret", "card_number"]))
    def test_sensitive_keys(self, key):
        assert is_sensitive_field(key) is True
        assert redact_sensitive_fields({key: "value"}) == {key: REDACTION_MARKER}

    def test_nested_sensitive_fields(self):
        data = {"user": {"name": "Jane", "credentials": {"password": "hunter2"}}}

        result = redact_sensitive_fields(data)

        assert result["user"]["credentials"]["password"] == REDACTION_MARKER
        assert result["user"]["name"] == "Jane"

    def test_redact_sensitive_fields_leaves_text_alone(self):
        assert redact_sensitive_fields({"email": "jane@example.com"}) == {"email": "jane@example.com"}

    def test_safe_fields_pass_through(self):
        data = {"user_id": "jane@example.com", "note": "jane@example.com"}

        result = redact_object(data)

        assert result["user_id"] == "jane@example.com"
        assert result["note"] == "ja***@example.com"

    def test_lists_and_tuples_keep_their_type(self):
        result = redact_object({"items": ["a@example.com"], "pair": ("x", "b@example.com")})

        assert isinstance(result["items"], list)
        assert isinstance(result["pair"], tuple)
        assert "a@example.com" not in result["items"][0]

    def test_non_string_scalars_untouched(self):
        assert redact_object({"count": 3, "ok": True, "ratio": 0.5, "none": None}) == {
            "count": 3,
            "ok": True,
            "ratio": 0.5,
            "none": None,
        }


class TestStructureSafety:
    def test_cycle_marked(self):
        data = {"name": "loop"}
        data["self"] = data

        result = redact_object(data)

        assert result["self"] == CIRCULAR_MARKER
        assert result["name"] == "loop"

    def test_shared_reference_is_not_a_cycle(self):
        shared = ["x"]

        result = redact_object({"a": shared, "b": shared})

        assert result == {"a": ["x"], "b": ["x"]}

    def test_depth_bounded(self):
        data = leaf = {}
        for _ in range(MAX_DEPTH + 10):
            leaf["next"] = {}
            leaf = leaf["next"]

        result = redact_object(data)

        node = result
        for _ in range(MAX_DEPTH):
            node = node["next"]
        assert node == TRUNCATED_MARKER

    def test_input_not_mutated(self):
        data = {"email": "jane@example.com", "password": "hunter2", "tags": ["b@example.com"]}
        original = copy.deepcopy(data)

        redact_object(data)

        assert data == original
