"""
Unit tests for tokens, CSRF and password helpers.

No web framework and no database involved: these are the primitives the
API dependencies are built on.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from astroadmin.core.ids import generate_custom_id, generate_media_id, is_media_id
from astroadmin.core.models import is_login_locked, public_user
from astroadmin.core.security import (
    SecurityError,
    TokenClaims,
    TokenConfig,
    build_access_token,
    build_refresh_token,
    decode_access_token,
    decode_refresh_token,
    extract_bearer_token,
    generate_csrf_token,
    hash_password,
    issue_token_pair,
    validate_csrf_token,
    verify_password,
)

SECRET = "access-secret-for-tests-0123456789abcdef"
REFRESH_SECRET = "refresh-secret-for-tests-0123456789abcdef"


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(secret=SECRET, refresh_secret=REFRESH_SECRET)


# ---------------------------------------------------------------------------
# Access / Refresh Tokens
# ---------------------------------------------------------------------------

class TestAccessTokens:
    """Tests for issuing and verifying access tokens."""

    def test_round_trip_preserves_identity(self, token_config):
        """A token we sign decodes back to the same user."""
        token = build_access_token(
            {"userId": "user_1_abc", "user_type": "customer", "email": "a@example.com"},
            token_config,
        )

        claims = decode_access_token(token, token_config)

        assert claims.user_id == "user_1_abc"
        assert claims.user_type == "customer"
        assert claims.email == "a@example.com"
        assert not claims.is_admin

    def test_token_carries_issuer_and_audience(self, token_config):
        """Issued tokens name the API as issuer and the app as audience."""
        token = build_access_token({"userId": "user_1_abc"}, token_config)

        payload = jwt.decode(token, options={"verify_signature": False})

        assert payload["iss"] == "trueastrotalk-api"
        assert payload["aud"] == "trueastrotalk-app"
        assert payload["exp"] - payload["iat"] == 90 * 24 * 60 * 60

    def test_legacy_user_id_claim_is_accepted(self, token_config):
        """Older tokens used user_id instead of userId."""
        token = build_access_token({"user_id": "user_2_def", "user_type": "manager"}, token_config)

        claims = decode_access_token(token, token_config)

        assert claims.user_id == "user_2_def"
        assert claims.is_admin

    def test_expired_token_is_rejected(self):
        """Tokens past their exp claim never verify."""
        expired = TokenConfig(secret=SECRET, refresh_secret=REFRESH_SECRET, access_expire_days=-1)
        token = build_access_token({"userId": "user_1_abc"}, expired)

        with pytest.raises(SecurityError, match="Invalid or expired"):
            decode_access_token(token, expired)

    def test_wrong_audience_is_rejected(self, token_config):
        """A token minted for another audience is not accepted."""
        other = TokenConfig(secret=SECRET, refresh_secret=REFRESH_SECRET, audience="other-app")
        token = build_access_token({"userId": "user_1_abc"}, other)

        with pytest.raises(SecurityError):
            decode_access_token(token, token_config)

    def test_wrong_secret_is_rejected(self, token_config):
        """Signature must match the configured secret."""
        token = build_access_token({"userId": "user_1_abc"}, token_config)
        other = TokenConfig(secret="x" * 40, refresh_secret=REFRESH_SECRET)

        with pytest.raises(SecurityError):
            decode_access_token(token, other)

    def test_refresh_token_uses_its_own_secret(self, token_config):
        """Refresh tokens don't verify as access tokens and vice versa."""
        refresh = build_refresh_token({"userId": "user_1_abc"}, token_config)

        assert decode_refresh_token(refresh, token_config)["userId"] == "user_1_abc"
        with pytest.raises(SecurityError):
            decode_access_token(refresh, token_config)

    def test_empty_token_is_rejected(self, token_config):
        with pytest.raises(SecurityError, match="empty"):
            decode_access_token("   ", token_config)

    def test_missing_secret_cannot_sign(self):
        """Tokens are never signed with an empty key."""
        with pytest.raises(SecurityError, match="not configured"):
            build_access_token({"userId": "u"}, TokenConfig(secret="", refresh_secret=""))

    def test_payload_without_user_id_is_rejected(self):
        with pytest.raises(SecurityError, match="no user id"):
            TokenClaims.from_payload({"user_type": "customer"})


class TestBearerExtraction:
    """Tests for reading the Authorization header."""

    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer   abc", "abc"),
        ("Basic abc", None),
        ("Bearer", None),
        ("", None),
        (None, None),
    ])
    def test_extracts_only_bearer_tokens(self, header, expected):
        assert extract_bearer_token(header) == expected


# ---------------------------------------------------------------------------
# CSRF
# ---------------------------------------------------------------------------

class TestCsrf:
    """Tests for the double-submit CSRF check."""

    def test_generated_tokens_are_random_hex(self):
        first, second = generate_csrf_token(), generate_csrf_token()

        assert len(first) == 64
        int(first, 16)
        assert first != second

    def test_matching_tokens_validate(self):
        token = generate_csrf_token()
        assert validate_csrf_token(token, token)

    def test_mismatched_tokens_fail(self):
        assert not validate_csrf_token(generate_csrf_token(), generate_csrf_token())

    def test_missing_side_fails(self):
        """Both the header and the cookie are required."""
        token = generate_csrf_token()
        assert not validate_csrf_token(token, None)
        assert not validate_csrf_token(None, token)
        assert not validate_csrf_token("", "")


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

class TestTokenPair:
    """Tests for issuing access/refresh pairs from a user document."""

    USER = {
        "user_id": "user_1_astro",
        "email_address": "ravi@example.com",
        "full_name": "Ravi",
        "user_type": "astrologer",
        "account_status": "active",
    }

    def test_pair_shares_a_session(self, token_config):
        pair = issue_token_pair(self.USER, token_config)

        claims = decode_access_token(pair.access_token, token_config)
        refresh = decode_refresh_token(pair.refresh_token, token_config)

        assert claims.user_id == "user_1_astro"
        assert claims.user_type == "astrologer"
        assert claims.email == "ravi@example.com"
        assert claims.session_id == pair.session_id
        assert refresh["userId"] == "user_1_astro"
        assert refresh["session_id"] == pair.session_id
        assert "user_type" not in refresh

    def test_each_pair_gets_a_new_session(self, token_config):
        first = issue_token_pair(self.USER, token_config)
        second = issue_token_pair(self.USER, token_config)
        assert first.session_id != second.session_id

    def test_user_without_user_id_is_rejected(self, token_config):
        with pytest.raises(SecurityError):
            issue_token_pair({"email_address": "x@example.com"}, token_config)


class TestLoginLockout:
    """Tests for the failed-login lock."""

    NOW = datetime(2024, 5, 3, 12, 0, tzinfo=timezone.utc)

    def test_few_failures_never_lock(self):
        doc = {"failed_login_attempts": 4, "last_failed_login": self.NOW}
        assert not is_login_locked(doc, self.NOW)

    def test_locked_within_thirty_minutes_of_last_failure(self):
        doc = {"failed_login_attempts": 5, "last_failed_login": self.NOW - timedelta(minutes=29)}
        assert is_login_locked(doc, self.NOW)

    def test_lock_expires(self):
        doc = {"failed_login_attempts": 7, "last_failed_login": self.NOW - timedelta(minutes=30)}
        assert not is_login_locked(doc, self.NOW)

    def test_naive_timestamps_are_utc(self):
        doc = {"failed_login_attempts": 5, "last_failed_login": datetime(2024, 5, 3, 11, 50)}
        assert is_login_locked(doc, self.NOW)

    def test_public_user_hides_secrets(self):
        user = public_user({
            "user_id": "user_1_astro",
            "password": "$2b$12$hash",
            "full_name": "Ravi",
            "user_type": "astrologer",
        })

        assert "password" not in user
        assert user["id"] == "user_1_astro"
        assert user["verification_status"] == "unverified"
        assert user["wallet_balance"] == 0


# ---------------------------------------------------------------------------
# Passwords and Ids
# ---------------------------------------------------------------------------

class TestPasswords:
    """Tests for bcrypt hashing."""

    def test_hash_verifies_only_the_original_password(self):
        hashed = hash_password("Secret@123")

        assert hashed.startswith("$2")
        assert verify_password("Secret@123", hashed)
        assert not verify_password("secret@123", hashed)

    def test_malformed_hash_does_not_raise(self):
        assert not verify_password("Secret@123", "not-a-bcrypt-hash")

    def test_empty_password_cannot_be_hashed(self):
        with pytest.raises(SecurityError):
            hash_password("")


class TestCustomIds:
    """Tests for entity-prefixed identifiers."""

    def test_custom_id_format(self):
        """Ids look like {entity}_{epoch_ms}_{8 base36 chars}."""
        entity, timestamp, random_part = generate_custom_id("user").split("_")

        assert entity == "user"
        assert timestamp.isdigit() and len(timestamp) == 13
        assert len(random_part) == 8
        assert random_part.isalnum() and random_part == random_part.lower()

    def test_media_ids_are_recognised(self):
        assert is_media_id(generate_media_id())
        assert not is_media_id("507f1f77bcf86cd799439011")
        assert not is_media_id("")
