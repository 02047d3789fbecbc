"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these types own the domain shape.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed role set. SUPER_ADMIN is allowed everywhere ADMIN is, but only
    because every gate lists both -- nothing infers a hierarchy."""

    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


@dataclass
class User:
    """A stored admin-panel account.

    email is always stored lowercase; UserStore normalizes on write and on
    lookup so comparisons are case-insensitive.

    id is None before the record is written to the database.
    """

    email: str
    role: str  # Role value
    hashed_password: str
    id: int | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """The caller identity the authentication gate attaches to a request.

    Built from live storage, not from the token claims, so is_active and role
    always reflect the current account state.
    """

    id: int
    email: str
    role: str
    is_active: bool


@dataclass(frozen=True)
class TokenPayload:
    """Decoded claims of a verified access token."""

    user_id: int
    email: str
    role: str
    issued_at: int  # epoch seconds
    expires_at: int  # epoch seconds
