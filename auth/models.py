"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores map rows into
these; the service and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """An identity that can log in.

    email_verified stays False until a verify-email action token issued for
    this exact (id, email) pair is consumed. Changing the email through a
    profile update resets it to False.
    """

    username: str
    email: str
    hashed_password: str
    id: int | None = None
    name: str | None = None
    phone_number: str | None = None
    email_verified: bool = False
    accepted_terms: bool = False
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Session:
    """A persisted session token.

    The token string is unique and bound to user_id at creation. revoked is a
    one-way switch: once True the token never authenticates again. user_id
    becomes None if the owning user is deleted.
    """

    token: str
    user_id: int | None
    id: int | None = None
    revoked: bool = False
    expires_at: str | None = None
    created_at: str | None = None


@dataclass
class Role:
    name: str
    id: int | None = None
    description: str | None = None


@dataclass(frozen=True)
class CurrentUser:
    """Identity attached to an authenticated request by get_current_user()."""

    id: int
    username: str
    verified: bool
    roles: list[str] = field(default_factory=list)
    token: str = field(default="", repr=False)
