"""
auth/tokens.py -- Session and action token issue/verify (python-jose).

Two token families, never interchangeable:

  Session tokens -- RS256 over the session key pair, default 1 hour. Claims:
       user_id, username, verified, kind="session", jti, iat, exp. The jti
       makes every issued string unique even for two logins in the same
       second, which the sessions table relies on (token UNIQUE).

  Action tokens -- HS256 over ACTION_TOKEN_SECRET (or RS256 over a second key
       pair), default 1 hour. Claims: purpose-specific identity fields plus
       kind="verify-email" or kind="reset-password", iat, exp.

Verification pins the algorithm and key of the expected family AND checks the
kind claim, so a session token presented as a reset link (or the reverse)
fails even if an attacker rewrites the header. There is no header-prefix
substitution anywhere.

Failures are typed (InvalidTokenError, ExpiredTokenError,
MalformedClaimsError) so callers can log the real cause. All of them are
AuthenticationError subclasses; what the client sees is decided by the
caller.

Revocation is NOT checked here. A session token with a valid signature may
still be blacklisted -- auth/dependencies.py consults the SessionStore.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from jose import ExpiredSignatureError, JOSEError, jwt

from auth.errors import AuthenticationError
from auth.keys import SESSION_ALGORITHM, KeyMaterial

logger = logging.getLogger("sessiongate.auth")


class TokenKind(str, Enum):
    SESSION = "session"
    VERIFY_EMAIL = "verify-email"
    RESET_PASSWORD = "reset-password"


# Claims each action token purpose must carry besides kind/iat/exp.
_ACTION_CLAIMS: dict[TokenKind, tuple[str, ...]] = {
    TokenKind.VERIFY_EMAIL: ("user_id", "email"),
    TokenKind.RESET_PASSWORD: ("user_id", "username"),
}

_SESSION_CLAIMS: tuple[str, ...] = ("user_id", "username")

# Claims the codec sets itself; callers may not override them.
_RESERVED_CLAIMS = frozenset({"kind", "iat", "exp", "jti"})


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TokenError(AuthenticationError):
    default_message = "Invalid token"


class InvalidTokenError(TokenError):
    """Bad signature, wrong algorithm, wrong kind, or undecodable token."""


class ExpiredTokenError(TokenError):
    default_message = "Token has expired"


class MalformedClaimsError(TokenError):
    """Signature is valid but required identity claims are absent."""

    default_message = "Token is missing required user information"


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def _missing(payload: dict, names: tuple[str, ...]) -> list[str]:
    return [n for n in names if payload.get(n) in (None, "")]


class TokenCodec:
    """Issues and verifies both token families from one immutable KeyMaterial.

    Pure function of key material, claims, and the clock: no I/O, safe to
    share across worker threads.

    Usage:
        codec = TokenCodec(get_key_material(), session_ttl=3600, action_ttl=3600)
        token = codec.issue_session_token(user.id, user.username, user.email_verified)
        claims = codec.verify_session_token(token)
    """

    def __init__(self, keys: KeyMaterial, session_ttl: int = 3600, action_ttl: int = 3600) -> None:
        self._keys = keys
        self.session_ttl = session_ttl
        self.action_ttl = action_ttl

    # ------------------------------------------------------------------
    # Session tokens
    # ------------------------------------------------------------------

    def issue_session_token(
        self,
        user_id: int,
        username: str,
        verified: bool,
        now: datetime | None = None,
    ) -> str:
        issued = now or datetime.now(timezone.utc)
        payload = {
            "user_id": user_id,
            "username": username,
            "verified": bool(verified),
            "kind": TokenKind.SESSION.value,
            "jti": secrets.token_urlsafe(16),
            "iat": issued,
            "exp": issued + timedelta(seconds=self.session_ttl),
        }
        return jwt.encode(payload, self._keys.session_private_key, algorithm=SESSION_ALGORITHM)

    def verify_session_token(self, token: str) -> dict[str, Any]:
        """Return the decoded claims of a valid session token.

        Order: signature + algorithm, expiry, identity claims, kind. A token
        whose signature checks out but lacks user_id or username raises
        MalformedClaimsError.
        """
        payload = self._decode(token, self._keys.session_public_key, SESSION_ALGORITHM)
        missing = _missing(payload, _SESSION_CLAIMS)
        if missing:
            raise MalformedClaimsError(detail=f"missing claims: {', '.join(missing)}")
        if payload.get("kind") != TokenKind.SESSION.value:
            raise InvalidTokenError(detail=f"expected session token, got kind={payload.get('kind')!r}")
        return payload

    # ------------------------------------------------------------------
    # Action tokens
    # ------------------------------------------------------------------

    def issue_action_token(
        self,
        kind: TokenKind,
        claims: dict[str, Any],
        ttl: int | None = None,
        now: datetime | None = None,
    ) -> str:
        if kind not in _ACTION_CLAIMS:
            raise ValueError(f"{kind!r} is not an action token kind")
        reserved = _RESERVED_CLAIMS & claims.keys()
        if reserved:
            raise ValueError(f"Reserved claims may not be set by callers: {sorted(reserved)}")
        missing = _missing(claims, _ACTION_CLAIMS[kind])
        if missing:
            raise ValueError(f"{kind.value} tokens require claims: {', '.join(missing)}")

        lifetime = self.action_ttl if ttl is None else ttl
        if lifetime <= 0:
            raise ValueError("Action token lifetime must be positive")

        issued = now or datetime.now(timezone.utc)
        payload = {
            **claims,
            "kind": kind.value,
            "iat": issued,
            "exp": issued + timedelta(seconds=lifetime),
        }
        return jwt.encode(payload, self._keys.action_signing_key, algorithm=self._keys.action_algorithm)

    def verify_action_token(self, token: str, kind: TokenKind) -> dict[str, Any]:
        """Return the decoded claims of a valid action token of the given kind."""
        payload = self._decode(token, self._keys.action_verify_key, self._keys.action_algorithm)
        if payload.get("kind") != kind.value:
            raise InvalidTokenError(detail=f"expected {kind.value} token, got kind={payload.get('kind')!r}")
        missing = _missing(payload, _ACTION_CLAIMS[kind])
        if missing:
            raise MalformedClaimsError(detail=f"missing claims: {', '.join(missing)}")
        return payload

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(token: str, key: str, algorithm: str) -> dict[str, Any]:
        try:
            return jwt.decode(token, key, algorithms=[algorithm], options={"require_exp": True})
        except ExpiredSignatureError as exc:
            raise ExpiredTokenError(detail=str(exc)) from exc
        except JOSEError as exc:
            raise InvalidTokenError(detail=str(exc)) from exc
