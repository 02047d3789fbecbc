"""
api/routes/admin.py -- Administrative REST endpoints.

Routes:
  GET   /api/admin/dashboard                  -- user/log counts + 10 newest audit records
  GET   /api/admin/logs?page=&limit=          -- paginated audit trail, newest first
  GET   /api/admin/users                      -- all users (no password hashes)
  PATCH /api/admin/users/{id}/toggle-status   -- flip a user's active flag

Every route requires ADMIN or SUPER_ADMIN. The router-level dependency list is
the gate pipeline, evaluated in order: authenticate (401) then require_admin
(403). Handlers do not repeat it.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Request

from api.models import (
    ActivityRow,
    AdminUserRow,
    DashboardResponse,
    DashboardStats,
    LogRow,
    LogsResponse,
    Pagination,
    ToggledUser,
    ToggleStatusResponse,
    UsersResponse,
)
from audit.models import AuditRecord
from audit.recorder import AuditRecorder
from auth.dependencies import authenticate, require_admin
from auth.store import UserStore
from core.errors import NotFoundError, ValidationError

_DEFAULT_PAGE = 1
_DEFAULT_LIMIT = 50
_MAX_LIMIT = 100
_RECENT_ACTIVITY = 10

router = APIRouter(prefix="/admin", dependencies=[Depends(authenticate), Depends(require_admin)])


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(request: Request) -> DashboardResponse:
    """Return headline counts and the newest audit records.

    loginAttempts counts LOGIN_* records from the last 24 hours (successes
    included); successfulLogins counts LOGIN_SUCCESS only.
    """
    user_store: UserStore = request.app.state.user_store
    recorder: AuditRecorder = request.app.state.audit_recorder

    since = datetime.now(timezone.utc) - timedelta(hours=24)
    stats = DashboardStats(
        total_users=user_store.count_users(),
        active_users=user_store.count_active_users(),
        total_logs=recorder.count(),
        login_attempts=recorder.count_since(since, action_prefix="LOGIN_"),
        successful_logins=recorder.count_since(since, action="LOGIN_SUCCESS"),
    )
    records = recorder.recent(_RECENT_ACTIVITY)
    emails = _current_emails(user_store, records)
    return DashboardResponse(
        stats=stats,
        recent_activity=[
            ActivityRow(
                id=r.id,
                action=r.action,
                email=emails.get(r.user_id) or r.email,
                timestamp=r.timestamp or "",
                success=r.success,
                ip_address=r.ip_address,
            )
            for r in records
        ],
    )


@router.get("/logs", response_model=LogsResponse)
def logs(request: Request, page: str | None = None, limit: str | None = None) -> LogsResponse:
    """Return one page of the audit trail.

    page/limit are taken as raw strings: anything non-numeric or below 1 falls
    back to the default instead of failing the request. limit is capped.
    """
    user_store: UserStore = request.app.state.user_store
    recorder: AuditRecorder = request.app.state.audit_recorder

    page_num = _positive_int(page, _DEFAULT_PAGE)
    page_size = min(_positive_int(limit, _DEFAULT_LIMIT), _MAX_LIMIT)
    records, total = recorder.list_page(page_num, page_size)
    emails = _current_emails(user_store, records)
    return LogsResponse(
        logs=[LogRow.from_record(r, emails.get(r.user_id) or r.email) for r in records],
        pagination=Pagination(page=page_num, limit=page_size, total=total, pages=math.ceil(total / page_size)),
    )


@router.get("/users", response_model=UsersResponse)
def users(request: Request) -> UsersResponse:
    user_store: UserStore = request.app.state.user_store
    return UsersResponse(users=[AdminUserRow.from_user(u) for u in user_store.list_users()])


@router.patch("/users/{user_id}/toggle-status", response_model=ToggleStatusResponse)
def toggle_status(request: Request, user_id: str) -> ToggleStatusResponse:
    """Flip a user's active flag. Deactivation takes effect on that user's next request.

    The caller's own account is not special: toggling it deactivates the
    caller like anyone else.
    """
    user_store: UserStore = request.app.state.user_store

    try:
        target_id = int(user_id)
    except ValueError:
        raise ValidationError("Invalid user ID") from None

    updated = user_store.toggle_active(target_id)
    if updated is None:
        raise NotFoundError("User not found")

    verb = "activated" if updated.is_active else "deactivated"
    return ToggleStatusResponse(
        message=f"User {verb} successfully",
        user=ToggledUser(id=updated.id, email=updated.email, role=updated.role, is_active=updated.is_active),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _positive_int(raw: str | None, default: int) -> int:
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value >= 1 else default


def _current_emails(user_store: UserStore, records: list[AuditRecord]) -> dict[int, str]:
    """Map user ids referenced by the records to the users' current email.

    Records keep their own email snapshot; this only prefers the live value
    when the user still exists.
    """
    return user_store.emails_by_id(r.user_id for r in records if r.user_id is not None)
