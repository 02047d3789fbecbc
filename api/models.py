"""
API request and response models for the admin panel REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
audit/models.py, which own the internal domain representation. Route handlers
map between the two.

Wire format is camelCase (isActive, ipAddress, ...) to match the dashboard
client. Models that need it inherit CamelModel; FastAPI serializes response
models by alias.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from audit.models import AuditRecord
from auth.models import User


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login.

    Both fields are optional at the schema level so a missing field reaches
    the credential verifier, which answers 400 and writes a LOGIN_ATTEMPT
    audit record. A schema-level 422 would skip that record.

    Only the email is trimmed. The password is compared byte for byte, so
    leading or trailing spaces are part of it.
    """

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def strip_email(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None


# ---------------------------------------------------------------------------
# Auth responses
# ---------------------------------------------------------------------------


class UserSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    token: str
    user: UserSummary


class VerifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool = True
    user: UserSummary


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Admin responses
# ---------------------------------------------------------------------------


class DashboardStats(CamelModel):
    total_users: int
    active_users: int
    total_logs: int
    login_attempts: int  # last 24h
    successful_logins: int  # last 24h


class ActivityRow(CamelModel):
    """One row in the dashboard's recent activity feed."""

    id: int
    action: str
    email: Optional[str]
    timestamp: str
    success: bool
    ip_address: Optional[str]


class DashboardResponse(CamelModel):
    stats: DashboardStats
    recent_activity: list[ActivityRow]


class LogRow(CamelModel):
    id: int
    action: str
    resource: Optional[str]
    email: Optional[str]
    timestamp: str
    success: bool
    ip_address: Optional[str]
    user_agent: Optional[str]
    metadata: Optional[dict[str, Any]]

    @classmethod
    def from_record(cls, record: AuditRecord, email: Optional[str]) -> "LogRow":
        """Factory Method: the mapping lives beside the output model."""
        return cls(
            id=record.id,
            action=record.action,
            resource=record.resource,
            email=email,
            timestamp=record.timestamp or "",
            success=record.success,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            metadata=record.metadata,
        )


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class LogsResponse(CamelModel):
    logs: list[LogRow]
    pagination: Pagination


class AdminUserRow(CamelModel):
    """User as listed to admins. Never carries the password hash."""

    id: int
    email: str
    role: str
    is_active: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "AdminUserRow":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class UsersResponse(CamelModel):
    users: list[AdminUserRow]


class ToggledUser(CamelModel):
    id: int
    email: str
    role: str
    is_active: bool


class ToggleStatusResponse(CamelModel):
    message: str
    user: ToggledUser


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses: {"message": ...}.

    Serialize with model_dump(exclude_none=True) so optional fields only
    appear when set.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    code: Optional[str] = None
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "OK"
    timestamp: datetime
