"""
api/main.py -- FastAPI application entry point for the admin panel.

Run with:      uvicorn api.main:app --reload
               python main.py serve

create_app() builds the application around one Settings instance. Everything
process-wide (token codec, user store, audit store/recorder) is constructed in
the lifespan and attached to app.state; gates, routes and middleware read it
from there. Nothing is configured at import time beyond the logging format.

Middleware stack (outermost to innermost):
  1. RequestAuditMiddleware -- one audit record per request, after the response
  2. TrustedHostMiddleware  -- rejects requests with unexpected Host headers
  3. CORSMiddleware         -- allows the dashboard origin (FRONTEND_URL)
  4. SlowAPIMiddleware      -- enforces per-route rate limits (per-app Limiter)
  5. security_headers       -- nosniff / frame / referrer headers on every response
  6. log_requests           -- METHOD PATH STATUS LATENCY CLIENT access log

Starlette wraps middleware so the LAST add_middleware() call is outermost;
create_app() therefore registers them innermost-first.

Lifespan handles startup (stores, codec, recorder, default admin seed) and
shutdown (flush the audit queue, close stores) symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import create_limiter
from api.middleware import HEALTH_PATH, RequestAuditMiddleware
from api.models import ErrorResponse, HealthResponse
from api.routes.admin import router as admin_router
from api.routes.auth import build_router as build_auth_router
from audit.recorder import AuditRecorder
from audit.store import AuditStore
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import TokenCodec, hash_password
from core.config import Settings, get_settings
from core.errors import AppError

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("adminpanel.api")

VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


def seed_default_admin(user_store: UserStore, settings: Settings) -> User:
    """Create the default SUPER_ADMIN unless an account with that email exists.

    Idempotent: safe to run on every startup. The password is only hashed
    when the account is actually created.
    """
    existing = user_store.get_by_email(settings.default_admin_email)
    if existing is not None:
        return existing
    user, created = user_store.ensure_user(
        User(
            email=settings.default_admin_email,
            role=Role.SUPER_ADMIN.value,
            hashed_password=hash_password(settings.default_admin_password),
        )
    )
    if created:
        logger.warning("Default admin account created (%s). Change its password.", user.email)
    return user


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the process-wide context on startup and tear it down on shutdown.

    Startup order matters: the recorder wraps the audit store, and the seed
    needs the user store.
    """
    settings: Settings = app.state.settings
    logger.info("Admin panel API starting up")
    app.state.token_codec = TokenCodec(settings.secret_key, settings.token_expire_seconds)
    app.state.user_store = UserStore(settings.database_url)
    app.state.audit_store = AuditStore(settings.database_url)
    app.state.audit_recorder = AuditRecorder(app.state.audit_store)
    seed_default_admin(app.state.user_store, settings)
    logger.info("Stores initialized (%d users)", app.state.user_store.count_users())

    yield

    app.state.audit_recorder.close()
    app.state.audit_store.close()
    app.state.user_store.close()
    logger.info("Admin panel API shutdown complete")


# ---------------------------------------------------------------------------
# Middleware functions
# ---------------------------------------------------------------------------


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


async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    return response


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves as {"message": ...} so the dashboard client reads one
# shape regardless of where the failure happened.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, **extra).model_dump(exclude_none=True),
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render the core/errors.py taxonomy. InternalError detail stays server-side."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
        settings: Settings = request.app.state.settings
        return _error(exc.status_code, "Internal server error", detail=exc.message if settings.debug else None)
    return _error(exc.status_code, exc.message)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a rate limit is exceeded, with Retry-After."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests", code="rate_limited", detail=str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters are a 400 like every other validation failure."""
    return _error(400, "Invalid request", code="validation_error", detail=_jsonable_errors(exc))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework-raised HTTP errors (unknown route, wrong method, ...)."""
    message = "Route not found" if exc.status_code == 404 and exc.detail == "Not Found" else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=message).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception goes to the log only. The client receives a generic
    message, plus the exception text when DEBUG is on.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    settings: Settings = request.app.state.settings
    return _error(500, "Internal server error", detail=repr(exc) if settings.debug else None)


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()]


# ---------------------------------------------------------------------------
# Health endpoint
#
# Registered directly on the app (not a router) so it is always reachable.
# Exempt from auditing and auth; not rate limited.
# ---------------------------------------------------------------------------


async def health() -> HealthResponse:
    """Return liveness and the current server time."""
    return HealthResponse(timestamp=datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Admin Panel API",
        description="Token authentication, role-gated administration and an HTTP audit trail.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    # SlowAPI looks for app.state.limiter by convention.
    limiter = create_limiter()
    app.state.limiter = limiter

    # Innermost first -- see module docstring.
    app.middleware("http")(log_requests)
    app.middleware("http")(security_headers)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)
    app.add_middleware(RequestAuditMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_api_route(HEALTH_PATH, health, methods=["GET"], response_model=HealthResponse, tags=["Health"])
    app.include_router(build_auth_router(limiter, settings.login_rate_limit), prefix="/api", tags=["Auth"])
    app.include_router(admin_router, prefix="/api", tags=["Admin"])
    return app


app = create_app()
