"""
core/errors.py -- Application error taxonomy.

Every failure the request pipeline reports to a caller is one of these. Each
class carries the HTTP status it maps to, so a single exception handler in
api/main.py renders them all as {"message": ...} without per-route branching.

Gates and handlers raise; they never build error responses themselves.

Layer rule: core/ is the kernel. No imports from api/, auth/, or audit/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that carry a caller-visible message and status."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400
    code = "validation_error"


class AuthenticationError(AppError):
    """Missing/invalid/expired token, or unknown/inactive user."""

    status_code = 401
    code = "unauthorized"


class AuthorizationError(AppError):
    """Valid identity without the required role."""

    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class InternalError(AppError):
    """Storage or unexpected faults. The message is never shown in production."""

    status_code = 500
    code = "internal_error"
