"""
api/middleware.py -- Request audit middleware (pure ASGI).

RequestAuditMiddleware wraps every HTTP request/response cycle and writes one
audit record per request after the response has been sent. It is registered
outermost (see api/main.py) so it also sees requests the auth gates reject,
requests the trusted-host check rejects, and routes that need no auth at all.

Why pure ASGI rather than @app.middleware("http"): the record needs the raw
request body (for non-read methods) and the final status code without
re-buffering the response. Wrapping receive/send observes both as they pass
through and never changes or delays what the client gets.

Per request:
  1. Exempt: the health check and every OPTIONS (CORS pre-flight) request.
  2. Pass receive/send through, capturing body chunks and the response status.
  3. Once the inner app returns (response fully sent) -- or raises, which is
     recorded as a 500 and re-raised -- best-effort decode the bearer token
     for user id / email. A bad token still gets a record, just without
     identity.
  4. Build the record and hand it to AuditRecorder.dispatch(). That call
     returns immediately; the write happens on the recorder's worker thread.

Auditing can never fail a request: everything after the response is wrapped
and any error is logged only.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import parse_qsl

from starlette.datastructures import Headers, QueryParams
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from audit.models import AuditRecord
from audit.recorder import AuditRecorder
from auth.tokens import InvalidTokenError, TokenCodec, extract_bearer_token

logger = logging.getLogger("adminpanel.api")

HEALTH_PATH = "/health"

_READ_METHODS = frozenset({"GET", "HEAD"})
_MAX_BODY_BYTES = 64 * 1024
_REDACTED = "[REDACTED]"
_SENSITIVE_KEYS = ("password", "token", "secret")


# ---------------------------------------------------------------------------
# Helpers shared with the route layer
# ---------------------------------------------------------------------------


def client_ip(scope: Scope, trust_proxy: bool = False) -> str | None:
    """Best-effort caller address.

    X-Forwarded-For is attacker-controlled unless a proxy we run overwrites
    it, so it is only honoured when TRUST_PROXY is enabled.
    """
    if trust_proxy:
        forwarded = Headers(scope=scope).get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip() or None
    client = scope.get("client")
    return client[0] if client else None


def redact(value: Any) -> Any:
    """Return a copy of a decoded body with credential-like values masked."""
    if isinstance(value, dict):
        return {
            k: _REDACTED if any(s in str(k).lower() for s in _SENSITIVE_KEYS) else redact(v) for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def _decode_body(body: bytes, content_type: str) -> Any:
    if not body:
        return None
    if len(body) > _MAX_BODY_BYTES:
        return f"<omitted: {len(body)} bytes>"
    media_type = content_type.split(";")[0].strip().lower()
    try:
        if media_type == "application/json" or media_type.endswith("+json"):
            return redact(json.loads(body))
        if media_type == "application/x-www-form-urlencoded":
            return redact(dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True)))
    except (ValueError, UnicodeDecodeError):
        return "<unparseable body>"
    return None


def _query_params(query_string: bytes) -> dict[str, Any] | None:
    params = QueryParams(query_string)
    if not params:
        return None
    result: dict[str, Any] = {}
    for key in params.keys():
        values = params.getlist(key)
        result[key] = values[0] if len(values) == 1 else values
    return result


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class RequestAuditMiddleware:
    """Write one AuditRecord per HTTP request, after the response is sent.

    Reads token_codec, audit_recorder and settings from app.state at request
    time, so it works with whatever the lifespan wired up.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] == "OPTIONS" or scope["path"] == HEALTH_PATH:
            await self.app(scope, receive, send)
            return

        capture_body = scope["method"] not in _READ_METHODS
        body = bytearray()
        status_code = 500

        async def receive_wrapper() -> Message:
            message = await receive()
            if capture_body and message["type"] == "http.request" and len(body) <= _MAX_BODY_BYTES:
                body.extend(message.get("body", b""))
            return message

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        finally:
            self._on_response_finished(scope, bytes(body) if capture_body else b"", status_code)

    def _on_response_finished(self, scope: Scope, body: bytes, status_code: int) -> None:
        try:
            state = scope["app"].state
            recorder: AuditRecorder = state.audit_recorder
            codec: TokenCodec = state.token_codec
            trust_proxy: bool = state.settings.trust_proxy
        except (KeyError, AttributeError):
            logger.warning("Audit middleware not wired (app.state incomplete); skipping %s", scope.get("path"))
            return

        try:
            recorder.dispatch(self._build_record(scope, body, status_code, codec, trust_proxy))
        except Exception:
            logger.exception("Audit record construction failed for %s %s", scope.get("method"), scope.get("path"))

    @staticmethod
    def _build_record(scope: Scope, body: bytes, status_code: int, codec: TokenCodec, trust_proxy: bool) -> AuditRecord:
        headers = Headers(scope=scope)
        method = scope["method"]
        path = scope["path"]

        user_id: int | None = None
        email: str | None = None
        token = extract_bearer_token(headers.get("authorization"))
        if token:
            try:
                payload = codec.decode(token)
                user_id, email = payload.user_id, payload.email
            except InvalidTokenError:
                pass  # still record the attempt, without identity

        metadata: dict[str, Any] = {"statusCode": status_code}
        if method not in _READ_METHODS:
            metadata["requestBody"] = _decode_body(body, headers.get("content-type", ""))
        query = _query_params(scope.get("query_string", b""))
        if query:
            metadata["queryParams"] = query

        return AuditRecord(
            action=f"{method} {path}",
            resource=path,
            success=status_code < 400,
            user_id=user_id,
            email=email,
            ip_address=client_ip(scope, trust_proxy),
            user_agent=headers.get("user-agent"),
            metadata=metadata,
        )
