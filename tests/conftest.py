"""
tests/conftest.py -- Shared test fixtures for SessionGate.

This module provides:
  - RecordingMailer: in-memory outbox standing in for SMTP
  - make_engine() / make_service(): isolated stores wired into an AuthService
  - _patch_lifespan(): wires a test AuthService into app.state, bypassing real startup
  - service: fresh AuthService per test (unit tests)
  - api_client: TestClient with an admin session token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient because it runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit tests run on one thread, so they use plain :memory:.

Environment must be prepared before any auth/core import:
  DEBUG / ACTION_TOKEN_SECRET  -- get_settings() validates token settings once
  BCRYPT_ROUNDS=4              -- keeps every bcrypt call in the suite cheap
  JWT_*_KEY_PATH               -- a throwaway RSA pair written to a temp dir
"""

from __future__ import annotations

import asyncio
import os
import tempfile
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: Set environment before any auth/core import so get_settings()
# sees test values on its first (cached) call.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ACTION_TOKEN_SECRET", "test-action-secret-0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:test_default?mode=memory&cache=shared&uri=true")

from auth.keys import generate_rsa_key_pair  # noqa: E402

_KEY_DIR = Path(tempfile.mkdtemp(prefix="sessiongate-keys-"))
_private_pem, _public_pem = generate_rsa_key_pair()
(_KEY_DIR / "private.pem").write_text(_private_pem)
(_KEY_DIR / "public.pem").write_text(_public_pem)
os.environ["JWT_PRIVATE_KEY_PATH"] = str(_KEY_DIR / "private.pem")
os.environ["JWT_PUBLIC_KEY_PATH"] = str(_KEY_DIR / "public.pem")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

from api.main import app  # noqa: E402
from auth.errors import MailError  # noqa: E402
from auth.keys import get_key_material  # noqa: E402
from auth.models import User  # noqa: E402
from auth.passwords import hash_password  # noqa: E402
from auth.roles import RoleStore  # noqa: E402
from auth.service import AuthService  # noqa: E402
from auth.sessions import SessionStore  # noqa: E402
from auth.store import UserStore, create_auth_engine  # noqa: E402
from auth.tokens import TokenCodec  # noqa: E402
from core.config import get_settings  # noqa: E402

ADMIN_USERNAME = "testadmin"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "testpass123"


# ---------------------------------------------------------------------------
# Mail
# ---------------------------------------------------------------------------


class RecordingMailer:
    """Mailer that keeps every message in self.outbox.

    Set fail=True to make the next sends raise MailError, as a broken SMTP
    relay would.
    """

    def __init__(self) -> None:
        self.outbox: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise MailError(detail="relay unavailable")
        self.outbox.append((to, subject, body))

    def last_link_token(self, to: str | None = None) -> str:
        """Token segment of the link in the newest message (optionally for one recipient)."""
        for recipient, _subject, body in reversed(self.outbox):
            if to is None or recipient == to:
                return body.rsplit("/", 1)[1]
        raise AssertionError(f"No mail sent to {to!r}")


# ---------------------------------------------------------------------------
# Store / service helpers
# ---------------------------------------------------------------------------


def make_engine(db_suffix: str | None = None) -> Engine:
    """Create an isolated store engine.

    With db_suffix a named shared-memory database is used, visible to every
    thread in the process; without it, a private single-thread :memory: DB.
    """
    if db_suffix is None:
        return create_auth_engine("sqlite:///:memory:")
    return create_auth_engine(f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def make_service(engine: Engine, mailer: RecordingMailer | None = None) -> AuthService:
    settings = get_settings()
    roles = RoleStore(engine)
    roles.ensure_roles(settings.seed_roles)
    return AuthService(
        users=UserStore(engine),
        sessions=SessionStore(engine),
        roles=roles,
        tokens=TokenCodec(
            get_key_material(),
            session_ttl=settings.session_token_expire_seconds,
            action_ttl=settings.action_token_expire_seconds,
        ),
        mailer=mailer or RecordingMailer(),
        settings=settings,
    )


def create_user(
    service: AuthService,
    username: str,
    password: str = "secret123",
    email: str | None = None,
    verified: bool = True,
    roles: tuple[str, ...] = ("user",),
) -> int:
    """Insert a user directly through the stores (no mail), with the given roles."""
    user_id = service.users.create_user(
        User(
            username=username,
            email=email or f"{username}@example.com",
            hashed_password=hash_password(password),
            email_verified=verified,
            accepted_terms=True,
        )
    )
    for role in service.roles.ensure_roles(roles):
        service.roles.assign(user_id, role.id)
    return user_id


def _patch_lifespan(engine: Engine, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.auth_service = service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def service(mailer: RecordingMailer) -> Generator[AuthService, None, None]:
    """Fresh AuthService on a private in-memory database, roles seeded."""
    engine = make_engine()
    yield make_service(engine, mailer)
    engine.dispose()


@pytest.fixture(scope="module")
def api_service() -> Generator[AuthService, None, None]:
    """Module-wide AuthService behind the TestClient; exposes .mailer.outbox."""
    engine = make_engine(f"api_{uuid.uuid4().hex[:8]}")
    service = make_service(engine, RecordingMailer())
    yield service
    engine.dispose()


@pytest.fixture(scope="module")
def api_client(api_service: AuthService) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory store. The admin is
    verified and holds both seeded roles; its token comes from a real login,
    so a session record exists for it.
    """
    admin_id = create_user(
        api_service,
        ADMIN_USERNAME,
        password=ADMIN_PASSWORD,
        email=ADMIN_EMAIL,
        roles=("user", "admin"),
    )
    token = api_service.login(ADMIN_USERNAME, ADMIN_PASSWORD)

    app.router.lifespan_context = _patch_lifespan(api_service.users.engine, api_service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin_id


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
