"""
auth/sessions.py -- SessionStore: persisted session tokens with a revoked flag.

The store behaves as an allow-list with a per-entry kill switch: a token
authenticates only if a record for it exists AND revoked is False. A token
with a valid signature that was never recorded (or whose record is revoked)
is rejected by auth/dependencies.py as "Token is blacklisted".

Revocation is permanent for a token value. Logging in again issues a new
token (fresh jti), so there is no un-revoke operation.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError
from auth.models import Session
from auth.store import now_iso, sessions_table


class SessionStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, token: str, user_id: int, expires_at: datetime | None = None) -> Session:
        """Persist a freshly issued session token (revoked=False).

        The write is committed before this returns, so the token is usable
        by the time the login response reaches the client.
        """
        created_at = now_iso()
        expires_iso = expires_at.isoformat() if expires_at is not None else None
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    sessions_table.insert().values(
                        token=token,
                        revoked=False,
                        user_id=user_id,
                        expires_at=expires_iso,
                        created_at=created_at,
                    )
                )
        except IntegrityError as exc:
            raise ConflictError("Session token already recorded.") from exc
        return Session(
            id=result.inserted_primary_key[0],
            token=token,
            user_id=user_id,
            revoked=False,
            expires_at=expires_iso,
            created_at=created_at,
        )

    def find_by_token(self, token: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(sessions_table.select().where(sessions_table.c.token == token)).fetchone()
        return _row_to_session(row) if row is not None else None

    def revoke(self, token: str, user_id: int) -> bool:
        """Revoke one token owned by user_id.

        Idempotent: returns False (and changes nothing) when no live record
        matches both the token and the owner.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                sessions_table.update()
                .where(
                    (sessions_table.c.token == token)
                    & (sessions_table.c.user_id == user_id)
                    & (sessions_table.c.revoked.is_(False))
                )
                .values(revoked=True)
            )
        return result.rowcount > 0

    def revoke_all_for_user(self, user_id: int) -> int:
        """Revoke every live session of a user. Returns the number revoked."""
        with self.engine.begin() as conn:
            result = conn.execute(
                sessions_table.update()
                .where((sessions_table.c.user_id == user_id) & (sessions_table.c.revoked.is_(False)))
                .values(revoked=True)
            )
        return result.rowcount

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete records whose expires_at has passed.

        Their tokens already fail signature-time expiry checks, so removing
        the rows cannot re-enable anything. ISO 8601 UTC strings sort
        chronologically, which keeps this a plain string comparison.
        """
        cutoff = (now or datetime.now(timezone.utc)).isoformat()
        with self.engine.begin() as conn:
            result = conn.execute(
                sessions_table.delete().where(
                    sessions_table.c.expires_at.is_not(None) & (sessions_table.c.expires_at < cutoff)
                )
            )
        return result.rowcount


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        revoked=bool(row.revoked),
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
