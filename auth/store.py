"""
auth/store.py -- SQLAlchemy Core schema, engine factory, and UserStore.

Pattern: Repository + Data Mapper. UserStore, SessionStore (auth/sessions.py)
and RoleStore (auth/roles.py) are the repositories; the _row_to_* functions
are the mappers. Service and route code never touches SQL directly.

All three repositories share one Engine built by create_auth_engine(), which
also creates the schema. The database engine is the only place that enforces
uniqueness and referential integrity; the repositories translate its
IntegrityError into typed failures (ConflictError, DuplicateNameError,
ConstraintViolationError) so callers never see driver exceptions for
expected conflicts.

Security:
  All queries use bound parameters. No f-strings in SQL.

SQLite specifics (the default backend):
  PRAGMA foreign_keys=ON is set per connection -- SQLite ignores FOREIGN KEY
  clauses otherwise, and user_roles relies on ON DELETE CASCADE while
  sessions relies on ON DELETE SET NULL.
  WAL journal mode lets readers proceed while a write is in flight.

Usage:
    engine = create_auth_engine("sqlite:///sessiongate.db")
    users = UserStore(engine)
    user_id = users.create_user(User(username="alice", email="a@x.com", hashed_password=h))
    users.update_user(user_id, email_verified=True)
    engine.dispose()
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError
from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("name", String(255)),
    Column("phone_number", String(50)),
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("accepted_terms", Boolean, nullable=False, default=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)

sessions_table = Table(
    "sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", Text, nullable=False, unique=True),
    Column("revoked", Boolean, nullable=False, default=False),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    Column("expires_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

roles_table = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", String(255)),
)

user_roles_table = Table(
    "user_roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
)

# Columns update_user() accepts. Anything else is a programming error.
_MUTABLE_USER_FIELDS = frozenset(
    {"username", "email", "hashed_password", "name", "phone_number", "email_verified", "accepted_terms"}
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable foreign keys and WAL journal mode on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def create_auth_engine(db_url: str) -> Engine:
    """Build the shared Engine and create any missing tables."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User identities. Users are never hard-deleted by the API."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises ConflictError if the username or email is already taken. The
        message names the email case explicitly because signup reports it as
        "User already registered".
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    users_table.insert().values(
                        username=user.username,
                        email=user.email,
                        hashed_password=user.hashed_password,
                        name=user.name,
                        phone_number=user.phone_number,
                        email_verified=user.email_verified,
                        accepted_terms=user.accepted_terms,
                        created_at=now_iso(),
                    )
                )
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise self._conflict(user.username, user.email) from exc

    def get_by_id(self, user_id: int) -> User | None:
        return self._fetch_one(users_table.c.id == user_id)

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive)."""
        return self._fetch_one(users_table.c.username == username)

    def get_by_email(self, email: str) -> User | None:
        return self._fetch_one(users_table.c.email == email)

    def get_by_id_and_email(self, user_id: int, email: str) -> User | None:
        """Match both fields. A verification link minted before an email change no longer matches."""
        return self._fetch_one((users_table.c.id == user_id) & (users_table.c.email == email))

    def get_by_id_and_username(self, user_id: int, username: str) -> User | None:
        return self._fetch_one((users_table.c.id == user_id) & (users_table.c.username == username))

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Returns True if a row was updated, False if user_id was not found.
        Raises ConflictError when a new username or email collides.
        """
        unknown = set(fields) - _MUTABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return self.get_by_id(user_id) is not None
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    users_table.update().where(users_table.c.id == user_id).values(**fields, updated_at=now_iso())
                )
        except IntegrityError as exc:
            raise self._conflict(fields.get("username"), fields.get("email"), exclude_id=user_id) from exc
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user. Role assignments cascade; sessions keep a NULL owner."""
        with self.engine.begin() as conn:
            result = conn.execute(users_table.delete().where(users_table.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_one(self, clause) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(users_table.select().where(clause)).fetchone()
        return _row_to_user(row) if row is not None else None

    def _conflict(self, username: str | None, email: str | None, exclude_id: int | None = None) -> ConflictError:
        if email:
            existing = self.get_by_email(email)
            if existing is not None and existing.id != exclude_id:
                return ConflictError("User already registered")
        if username:
            existing = self.get_by_username(username)
            if existing is not None and existing.id != exclude_id:
                return ConflictError("Username already taken")
        return ConflictError()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        name=row.name,
        phone_number=row.phone_number,
        email_verified=bool(row.email_verified),
        accepted_terms=bool(row.accepted_terms),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
