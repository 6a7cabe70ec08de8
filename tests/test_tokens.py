"""Unit tests for auth/tokens.py -- session and action token codec.

Covers:
- Session tokens carry identity claims, kind="session", and a unique jti
- Expiry boundary: valid shortly before exp, ExpiredTokenError after
- The two families are never interchangeable (algorithm + key + kind pinned)
- A verify-email token is not accepted as a reset-password token
- Tampered and forged tokens raise InvalidTokenError
- Signed tokens missing identity claims raise MalformedClaimsError
- issue_action_token() rejects bad kinds, reserved claims, missing claims
- An explicit ttl is honoured as given; a non-positive one is refused
- RS256 action tokens over a second key pair
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import AuthenticationError
from auth.keys import SESSION_ALGORITHM, KeyMaterial, generate_rsa_key_pair, get_key_material
from auth.tokens import (
    ExpiredTokenError,
    InvalidTokenError,
    MalformedClaimsError,
    TokenCodec,
    TokenKind,
)

# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(get_key_material(), session_ttl=3600, action_ttl=600)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class TestSessionTokens:
    def test_round_trip_claims(self, codec):
        token = codec.issue_session_token(7, "alice", True)
        claims = codec.verify_session_token(token)
        assert claims["user_id"] == 7
        assert claims["username"] == "alice"
        assert claims["verified"] is True
        assert claims["kind"] == "session"
        assert claims["exp"] - claims["iat"] == 3600

    def test_header_is_rs256(self, codec):
        token = codec.issue_session_token(7, "alice", False)
        assert jwt.get_unverified_header(token)["alg"] == "RS256"

    def test_same_second_logins_get_distinct_tokens(self, codec):
        issued = _now()
        first = codec.issue_session_token(7, "alice", False, now=issued)
        second = codec.issue_session_token(7, "alice", False, now=issued)
        assert first != second

    def test_valid_just_before_expiry(self, codec):
        token = codec.issue_session_token(7, "alice", False, now=_now() - timedelta(seconds=3600 - 5))
        assert codec.verify_session_token(token)["user_id"] == 7

    def test_expired_after_ttl(self, codec):
        token = codec.issue_session_token(7, "alice", False, now=_now() - timedelta(seconds=3601))
        with pytest.raises(ExpiredTokenError):
            codec.verify_session_token(token)

    def test_tampered_signature_rejected(self, codec):
        token = codec.issue_session_token(7, "alice", False)
        head, payload, signature = token.split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        with pytest.raises(InvalidTokenError):
            codec.verify_session_token(f"{head}.{payload}.{flipped}")

    def test_garbage_rejected(self, codec):
        with pytest.raises(InvalidTokenError):
            codec.verify_session_token("not.a.token")

    def test_hs256_forgery_with_action_secret_rejected(self, codec):
        keys = get_key_material()
        forged = jwt.encode(
            {"user_id": 1, "username": "root", "kind": "session", "exp": _now() + timedelta(hours=1)},
            keys.action_signing_key,
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            codec.verify_session_token(forged)

    def test_missing_identity_claims_is_malformed(self, codec):
        keys = get_key_material()
        token = jwt.encode(
            {"user_id": 1, "kind": "session", "exp": _now() + timedelta(hours=1)},
            keys.session_private_key,
            algorithm=SESSION_ALGORITHM,
        )
        with pytest.raises(MalformedClaimsError) as exc_info:
            codec.verify_session_token(token)
        assert exc_info.value.message == "Token is missing required user information"

    def test_failures_are_authentication_errors(self):
        assert issubclass(InvalidTokenError, AuthenticationError)
        assert ExpiredTokenError().status_code == 401


# ---------------------------------------------------------------------------
# Action tokens
# ---------------------------------------------------------------------------


class TestActionTokens:
    def test_verify_email_round_trip(self, codec):
        token = codec.issue_action_token(TokenKind.VERIFY_EMAIL, {"user_id": 3, "email": "a@example.com"})
        claims = codec.verify_action_token(token, TokenKind.VERIFY_EMAIL)
        assert claims["user_id"] == 3
        assert claims["email"] == "a@example.com"
        assert claims["kind"] == "verify-email"
        assert claims["exp"] - claims["iat"] == 600

    def test_kind_mismatch_rejected(self, codec):
        token = codec.issue_action_token(TokenKind.VERIFY_EMAIL, {"user_id": 3, "email": "a@example.com"})
        with pytest.raises(InvalidTokenError):
            codec.verify_action_token(token, TokenKind.RESET_PASSWORD)

    def test_action_token_is_not_a_session_token(self, codec):
        token = codec.issue_action_token(TokenKind.RESET_PASSWORD, {"user_id": 3, "username": "bob"})
        with pytest.raises(InvalidTokenError):
            codec.verify_session_token(token)

    def test_session_token_is_not_an_action_token(self, codec):
        token = codec.issue_session_token(3, "bob", True)
        with pytest.raises(InvalidTokenError):
            codec.verify_action_token(token, TokenKind.RESET_PASSWORD)

    def test_valid_one_second_before_expiry(self, codec):
        token = codec.issue_action_token(
            TokenKind.VERIFY_EMAIL,
            {"user_id": 3, "email": "a@example.com"},
            now=_now() - timedelta(seconds=600 - 1),
        )
        assert codec.verify_action_token(token, TokenKind.VERIFY_EMAIL)["user_id"] == 3

    def test_expired_one_second_after_ttl(self, codec):
        token = codec.issue_action_token(
            TokenKind.VERIFY_EMAIL,
            {"user_id": 3, "email": "a@example.com"},
            now=_now() - timedelta(seconds=600 + 1),
        )
        with pytest.raises(ExpiredTokenError):
            codec.verify_action_token(token, TokenKind.VERIFY_EMAIL)

    def test_custom_ttl_expiry(self, codec):
        token = codec.issue_action_token(
            TokenKind.RESET_PASSWORD,
            {"user_id": 3, "username": "bob"},
            ttl=60,
            now=_now() - timedelta(seconds=61),
        )
        with pytest.raises(ExpiredTokenError):
            codec.verify_action_token(token, TokenKind.RESET_PASSWORD)

    def test_short_explicit_ttl_is_honoured(self, codec):
        token = codec.issue_action_token(
            TokenKind.VERIFY_EMAIL,
            {"user_id": 3, "email": "a@example.com"},
            ttl=1,
            now=_now() - timedelta(seconds=5),
        )
        with pytest.raises(ExpiredTokenError):
            codec.verify_action_token(token, TokenKind.VERIFY_EMAIL)

    @pytest.mark.parametrize("ttl", [0, -30])
    def test_non_positive_ttl_refused(self, codec, ttl):
        with pytest.raises(ValueError, match="lifetime"):
            codec.issue_action_token(TokenKind.VERIFY_EMAIL, {"user_id": 3, "email": "a@example.com"}, ttl=ttl)

    def test_session_kind_cannot_be_issued_as_action(self, codec):
        with pytest.raises(ValueError):
            codec.issue_action_token(TokenKind.SESSION, {"user_id": 3, "username": "bob"})

    def test_reserved_claims_refused(self, codec):
        with pytest.raises(ValueError, match="Reserved"):
            codec.issue_action_token(
                TokenKind.VERIFY_EMAIL, {"user_id": 3, "email": "a@example.com", "kind": "session"}
            )

    def test_missing_purpose_claims_refused(self, codec):
        with pytest.raises(ValueError, match="email"):
            codec.issue_action_token(TokenKind.VERIFY_EMAIL, {"user_id": 3})

    def test_rs256_action_pair(self):
        session = get_key_material()
        action_private, action_public = generate_rsa_key_pair()
        keys = KeyMaterial(
            session_private_key=session.session_private_key,
            session_public_key=session.session_public_key,
            action_signing_key=action_private,
            action_verify_key=action_public,
            action_algorithm="RS256",
        )
        codec = TokenCodec(keys)
        token = codec.issue_action_token(TokenKind.RESET_PASSWORD, {"user_id": 9, "username": "eve"})
        assert jwt.get_unverified_header(token)["alg"] == "RS256"
        assert codec.verify_action_token(token, TokenKind.RESET_PASSWORD)["user_id"] == 9
        # Signed with the action pair, so the session key must not verify it.
        with pytest.raises(InvalidTokenError):
            codec.verify_session_token(token)
