"""
auth/dependencies.py -- FastAPI Depends() helpers: authentication and role checks.

get_current_user() runs the per-request authentication chain:

  1. Authorization: Bearer <token> header        absent     -> 401 "No token provided"
  2. Signature (RS256, session key) + expiry      bad        -> 401 "Invalid token"
  3. user_id and username claims present          missing    -> 401 "Token is missing required user information"
  4. SessionStore record exists and not revoked   otherwise  -> 401 "Token is blacklisted"
  5. Identity (id + username) exists, load roles  absent     -> 401 "User not found"

On success a CurrentUser is returned and attached to request.state.user.

Token failures collapse to the messages above whatever the underlying cause
(bad signature, expired, wrong kind). The cause is logged, never returned.

authorize_roles() is the role gate: a pure function over the attached
identity. It only ever produces 403 -- authentication problems are settled
before it runs. require_roles(*names) wraps both into a dependency:

    @router.post("/roles")
    def create_role(user: CurrentUser = Depends(require_roles("admin"))): ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from fastapi import Depends, Request

from auth.errors import AuthenticationError, AuthorizationError, NotFoundError
from auth.models import CurrentUser
from auth.service import AuthService
from auth.tokens import MalformedClaimsError, TokenError

logger = logging.getLogger("sessiongate.auth")


def get_auth_service(request: Request) -> AuthService:
    """The process-wide AuthService wired up by the lifespan in api/main.py."""
    return request.app.state.auth_service


def get_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("No token provided")
    return token.strip()


def resolve_current_user(service: AuthService, token: str) -> CurrentUser:
    """Run steps 2-5 of the chain for an already-extracted token."""
    try:
        claims = service.tokens.verify_session_token(token)
    except MalformedClaimsError as exc:
        logger.info("Session token rejected: %s", exc.detail)
        raise AuthenticationError(exc.message) from exc
    except TokenError as exc:
        logger.info("Session token rejected: %s (%s)", type(exc).__name__, exc.detail)
        raise AuthenticationError("Invalid token") from exc

    session = service.sessions.find_by_token(token)
    if session is None or session.revoked:
        logger.info("Blacklisted or unknown session token for user_id=%s", claims["user_id"])
        raise AuthenticationError("Token is blacklisted")

    user = service.users.get_by_id_and_username(claims["user_id"], claims["username"])
    if user is None:
        raise AuthenticationError("User not found")
    try:
        roles = service.roles.roles_of(user.id)
    except NotFoundError as exc:
        # Deleted between the two reads.
        raise AuthenticationError("User not found") from exc

    return CurrentUser(
        id=user.id,
        username=user.username,
        verified=user.email_verified,
        roles=roles,
        token=token,
    )


def get_current_user(request: Request) -> CurrentUser:
    """Require a valid, unrevoked session token. Raises 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/user")
        def route(user: CurrentUser = Depends(get_current_user)): ...
    """
    current = resolve_current_user(get_auth_service(request), get_bearer_token(request))
    request.state.user = current
    return current


def authorize_roles(user: CurrentUser | None, allowed_roles: Iterable[str]) -> CurrentUser:
    """Return user if it holds at least one of allowed_roles, else raise 403.

    No identity is "Access denied"; an identity whose roles miss every
    allowed role (including one with no roles at all) is "Forbidden:
    Insufficient permissions". Both are 403, never 401.
    """
    if user is None:
        raise AuthorizationError("Access denied")
    if not set(user.roles) & set(allowed_roles):
        logger.info("user_id=%s lacks roles %s", user.id, sorted(allowed_roles))
        raise AuthorizationError("Forbidden: Insufficient permissions")
    return user


def require_roles(*allowed_roles: str):
    """Dependency factory: authenticate, then require one of allowed_roles."""

    def role_checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        return authorize_roles(current_user, allowed_roles)

    return role_checker
