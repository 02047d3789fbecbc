"""
audit/models.py -- Domain dataclass for audit trail entries.

An AuditRecord is a denormalized snapshot: user_id and email are copied at
write time and are not a foreign key, so a record stays readable after the
user is deactivated or when the claimed identity never resolved to a user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AuditRecord:
    """One observed action.

    action is a free-form tag: "LOGIN_SUCCESS", "LOGIN_ATTEMPT", "LOGOUT", or
    "<METHOD> <PATH>" for records written by the request audit middleware.

    id and timestamp are None until the store writes the record.
    """

    action: str
    success: bool = True
    user_id: int | None = None
    email: str | None = None
    resource: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] | None = field(default=None)
    id: int | None = None
    timestamp: str | None = None  # ISO 8601 UTC, set by AuditStore.insert()
