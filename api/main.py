"""
api/main.py -- FastAPI application entry point for Gatehouse.

Install deps:  pip install -e .
Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- CORS headers for the configured browser origins,
                              credentials allowed so the refresh cookie flows
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every store and service once and puts them on app.state.
Routes and dependencies read them from request.app.state; nothing imports a
module-level store, so tests can swap the whole graph by replacing the
lifespan.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import HealthResponse
from api.responses import fail
from api.routes.v1.auth import router as auth_router
from api.routes.v1.contact import router as contact_router
from api.routes.v1.profiles import router as profiles_router
from api.routes.v1.users import router as users_router
from auth.notifications import AccountNotifier
from auth.service import AccountService
from auth.store import UserStore
from core.config import Settings, get_settings
from core.db import ping
from core.errors import ServiceError
from core.mailer import FailoverMailer, build_mailer
from directory.notifications import ContactNotifier
from directory.store import DirectoryStore

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatehouse.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


def init_state(
    app: FastAPI,
    settings: Settings,
    user_store: UserStore,
    directory_store: DirectoryStore,
    mailer: FailoverMailer,
) -> None:
    """Wire stores, mailer and services onto app.state."""
    app.state.settings = settings
    app.state.user_store = user_store
    app.state.directory_store = directory_store
    app.state.mailer = mailer
    app.state.account_service = AccountService(user_store, AccountNotifier(mailer, settings), settings)
    app.state.contact_notifier = ContactNotifier(mailer, settings)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    logger.info("Gatehouse API starting up (environment=%s)", _settings.environment)
    user_store = UserStore(_settings.database_url)
    directory_store = DirectoryStore(_settings.database_url)
    init_state(app, _settings, user_store, directory_store, build_mailer(_settings))
    if not user_store.has_users():
        logger.warning("No accounts exist yet. Bootstrap an admin with: python main.py create-admin")

    yield

    user_store.close()
    directory_store.close()
    logger.info("Gatehouse API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatehouse API",
    description="Accounts, authentication, profiles and contact messages.",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/api-docs",
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time is captured around call_next to report latency.
# Query strings are not logged: verification and reset links carry tokens.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])
app.include_router(profiles_router, prefix="/api", tags=["Profiles"])
app.include_router(contact_router, prefix="/api", tags=["Contact"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {success: false, message, errors?} envelope so
# API clients can parse errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return fail(exc.message, exc.status_code, exc.errors)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = fail("Too many requests, please try again later.", 429)
    response.headers["Retry-After"] = str(retry_after)
    return response


def _field_name(loc: tuple) -> str:
    # loc is ("body", "confirmPassword") or ("query", "page"); drop the source.
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one {field, message} entry per failed constraint."""
    errors = [
        {
            "field": _field_name(tuple(err.get("loc", ()))),
            "message": str(err.get("msg", "Invalid value")).removeprefix("Value error, "),
        }
        for err in exc.errors()
    ]
    return fail("Validation failed", 400, errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework HTTP errors (unknown route, wrong method) in the envelope."""
    response = fail(str(exc.detail), exc.status_code)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The traceback goes to the log. Outside production the exception text is
    echoed in the message to help local debugging; in production the client
    only sees the generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    message = "Internal server error"
    if not _settings.is_production:
        message = f"{message}: {exc}"
    return fail(message, 500)


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
async def health(request: Request) -> JSONResponse:
    """Return liveness, version and a database round-trip check."""
    components = {"app": "ok"}
    try:
        ping(request.app.state.user_store.engine)
        components["database"] = "ok"
    except SQLAlchemyError as exc:
        logger.warning("Health check: database unavailable: %s", exc)
        components["database"] = "error"
    healthy = all(v == "ok" for v in components.values())
    body = HealthResponse(status="healthy" if healthy else "degraded", version=API_VERSION, components=components)
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
