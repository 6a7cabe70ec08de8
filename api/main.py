"""
api/main.py -- FastAPI application entry point for SessionGate.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware      -- adds CORS headers for allowed browser origins
  2. log_requests        -- method, path, status, latency, client IP per request

Lifespan handles startup (settings, key material, database, role seeding,
session purge task) and shutdown (cancel purge task, dispose engine)
symmetrically. Key files are read exactly once, here; a missing key aborts
startup instead of failing the first login.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.roles import router as roles_router
from api.routes.users import router as users_router
from auth.errors import AuthError
from auth.keys import get_key_material
from auth.mailer import build_mailer
from auth.passwords import dummy_hash
from auth.roles import RoleStore
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore, create_auth_engine
from auth.tokens import TokenCodec
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessiongate.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired session records every 6 hours.

    The store call blocks, so it runs in a worker thread. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep and unwinds
    the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(6 * 60 * 60)
        purged = await asyncio.to_thread(app.state.auth_service.sessions.purge_expired)
        if purged:
            logger.info("Purged %d expired session record(s)", purged)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def build_auth_service(engine, settings) -> AuthService:
    """Wire stores, codec, and mailer into one AuthService."""
    roles = RoleStore(engine)
    roles.ensure_roles(settings.seed_roles)
    codec = TokenCodec(
        get_key_material(),
        session_ttl=settings.session_token_expire_seconds,
        action_ttl=settings.action_token_expire_seconds,
    )
    return AuthService(
        users=UserStore(engine),
        sessions=SessionStore(engine),
        roles=roles,
        tokens=codec,
        mailer=build_mailer(settings),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Key material first -- fail fast before touching the database.
      2. Engine + schema, then role seeding (the default role must exist
         before the first signup).
      3. Purge task last -- references app.state.auth_service.
    """
    logger.info("SessionGate API starting up")
    settings = get_settings()
    get_key_material()
    dummy_hash()
    app.state.engine = create_auth_engine(settings.database_url)
    app.state.auth_service = build_auth_service(app.state.engine, settings)
    logger.info("Auth initialized (roles seeded: %s)", ", ".join(settings.seed_roles))
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.engine.dispose()
    logger.info("SessionGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SessionGate API",
    description="Credential, session, and role-based access core.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    user = getattr(request.state, "user", None)
    logger.info(
        "%s %s %d %.1fms %s user_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
        user.id if user is not None else "-",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])
app.include_router(roles_router, tags=["Roles"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render every typed auth failure.

    detail is only exposed for 500s (the store, crypto, or mail cause). For
    4xx it stays server-side: token failure causes in particular must not be
    distinguishable by the caller.
    """
    detail = exc.detail if exc.status_code >= 500 else None
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
    response = _error_response(exc.status_code, exc.code, exc.message, detail)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with structured error when request body or path params fail validation."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = first.get("msg", "Request validation failed.")
    return _error_response(
        400,
        "validation_error",
        f"{field}: {message}" if field else message,
        detail=str([{"loc": e.get("loc"), "msg": e.get("msg")} for e in errors]),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured errors for routing-level failures (unknown path, wrong method)."""
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Store failures that were not translated into a typed conflict.

    The driver message is returned as detail (no SQL, no traceback); the full
    exception goes to the server log.
    """
    logger.exception("Database error on %s %s", request.method, request.url.path)
    cause = getattr(exc, "orig", None) or exc
    return _error_response(500, "internal_error", "Internal server error", detail=type(cause).__name__)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness plus a cheap database round trip."""
    components = {"app": "ok", "database": "ok"}
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check database probe failed")
        components["database"] = "error"
    return HealthResponse(version=VERSION, components=components)
