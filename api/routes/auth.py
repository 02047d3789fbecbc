"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/auth/login   -- email/password login; returns a bearer token
  GET  /api/auth/verify  -- echo the caller's identity (requires auth)
  POST /api/auth/logout  -- audit-only; the token is NOT revoked (requires auth)

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  The limit is applied in build_router(), once per app, with that app's
  Limiter and Settings.
  verify_credentials() provides timing equalization -- use it, never inline
  get_by_email() + verify_password().
  Unknown email and wrong password return the identical 401 body; the audit
  record's metadata.error tells them apart.
  Cache-Control: no-store on login responses.

Logout is stateless: the client discards its token. A token stays valid until
expiry unless the account is deactivated.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter

from api.middleware import client_ip
from api.models import ErrorResponse, LoginRequest, LoginResponse, MessageResponse, UserSummary, VerifyResponse
from audit.models import AuditRecord
from audit.recorder import AuditRecorder
from auth.credentials import CredentialError, CredentialFailure, verify_credentials
from auth.dependencies import authenticate
from auth.models import Identity
from auth.store import UserStore
from auth.tokens import TokenCodec

# Auth policy:
# - POST /api/auth/login:   public -- login endpoint must be unauthenticated
# - GET  /api/auth/verify:  requires auth (authenticate)
# - POST /api/auth/logout:  requires auth (authenticate)
#
# verify and logout carry no per-app state and are declared once here; login
# is wrapped with the rate limit in build_router().
_session_router = APIRouter()


def build_router(limiter: Limiter, login_limit: str) -> APIRouter:
    """Return the /auth router with login limited to `login_limit` per client."""
    router = APIRouter(prefix="/auth")
    router.add_api_route(
        "/login",
        limiter.limit(login_limit)(login),
        methods=["POST"],
        response_model=LoginResponse,
    )
    router.include_router(_session_router)
    return router


def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a signed token.

    Writes a LOGIN_SUCCESS or LOGIN_ATTEMPT audit record on top of the record
    the request audit middleware writes for every request.
    """
    user_store: UserStore = request.app.state.user_store
    recorder: AuditRecorder = request.app.state.audit_recorder
    codec: TokenCodec = request.app.state.token_codec
    ip_address = client_ip(request.scope, request.app.state.settings.trust_proxy)
    user_agent = request.headers.get("user-agent")

    try:
        user = verify_credentials(user_store, body.email, body.password)
    except CredentialError as exc:
        recorder.dispatch(
            AuditRecord(
                action="LOGIN_ATTEMPT",
                success=False,
                user_id=exc.user.id if exc.user else None,
                email=body.email,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"error": exc.failure.audit_reason},
            )
        )
        status = 400 if exc.failure is CredentialFailure.MISSING_INPUT else 401
        resp = JSONResponse(
            status_code=status,
            content=ErrorResponse(message=exc.failure.public_message).model_dump(exclude_none=True),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = codec.issue(user.id, user.email, user.role)
    recorder.dispatch(
        AuditRecord(
            action="LOGIN_SUCCESS",
            success=True,
            user_id=user.id,
            email=body.email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    )
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            message="Login successful",
            token=token,
            user=UserSummary(id=user.id, email=user.email, role=user.role),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@_session_router.get("/verify", response_model=VerifyResponse)
def verify(identity: Identity = Depends(authenticate)) -> VerifyResponse:
    """Return the identity behind the presented token.

    Reaching this handler means the authentication gate accepted the token
    and the account is live.
    """
    return VerifyResponse(valid=True, user=UserSummary(id=identity.id, email=identity.email, role=identity.role))


@_session_router.post("/logout", response_model=MessageResponse)
def logout(request: Request, identity: Identity = Depends(authenticate)) -> MessageResponse:
    recorder: AuditRecorder = request.app.state.audit_recorder
    recorder.dispatch(
        AuditRecord(
            action="LOGOUT",
            success=True,
            user_id=identity.id,
            email=identity.email,
            ip_address=client_ip(request.scope, request.app.state.settings.trust_proxy),
            user_agent=request.headers.get("user-agent"),
        )
    )
    return MessageResponse(message="Logged out successfully")
