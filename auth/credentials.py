"""
auth/credentials.py -- Email/password verification for the login endpoint.

verify_credentials() walks a fixed sequence of checks and raises a
CredentialError whose `failure` names the exact step that failed:

    MISSING_INPUT -> UNKNOWN_EMAIL -> ACCOUNT_DISABLED -> BAD_PASSWORD -> User

UNKNOWN_EMAIL and BAD_PASSWORD share one caller-visible message so the login
endpoint cannot be used to enumerate accounts; the audit trail records which
one actually happened via CredentialFailure.audit_reason.

Timing equalization: an unknown email still pays for one bcrypt comparison
against _DUMMY_HASH, so response time does not reveal whether the account
exists.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

from enum import Enum

from auth.models import User
from auth.store import UserStore, normalize_email
from auth.tokens import hash_password, verify_password


class CredentialFailure(Enum):
    MISSING_INPUT = "missing_input"
    UNKNOWN_EMAIL = "unknown_email"
    ACCOUNT_DISABLED = "account_disabled"
    BAD_PASSWORD = "bad_password"

    @property
    def public_message(self) -> str:
        return _PUBLIC_MESSAGES[self]

    @property
    def audit_reason(self) -> str:
        return _AUDIT_REASONS[self]


_PUBLIC_MESSAGES = {
    CredentialFailure.MISSING_INPUT: "Email and password are required",
    CredentialFailure.UNKNOWN_EMAIL: "Invalid credentials",
    CredentialFailure.ACCOUNT_DISABLED: "Account is deactivated",
    CredentialFailure.BAD_PASSWORD: "Invalid credentials",
}

_AUDIT_REASONS = {
    CredentialFailure.MISSING_INPUT: "Missing credentials",
    CredentialFailure.UNKNOWN_EMAIL: "User not found",
    CredentialFailure.ACCOUNT_DISABLED: "Account deactivated",
    CredentialFailure.BAD_PASSWORD: "Invalid password",
}


class CredentialError(Exception):
    """Login failed. `user` is set when the account was found."""

    def __init__(self, failure: CredentialFailure, user: User | None = None) -> None:
        super().__init__(failure.audit_reason)
        self.failure = failure
        self.user = user


# Computed once at module load so the first unknown-email login is not
# measurably slower than later ones.
_DUMMY_HASH: str = hash_password("adminpanel_timing_dummy")


def verify_credentials(store: UserStore, email: str | None, password: str | None) -> User:
    """Return the matching active User or raise CredentialError."""
    if not email or not email.strip() or not password:
        raise CredentialError(CredentialFailure.MISSING_INPUT)

    user = store.get_by_email(normalize_email(email))
    if user is None:
        verify_password(password, _DUMMY_HASH)
        raise CredentialError(CredentialFailure.UNKNOWN_EMAIL)
    if not user.is_active:
        raise CredentialError(CredentialFailure.ACCOUNT_DISABLED, user)
    if not verify_password(password, user.hashed_password):
        raise CredentialError(CredentialFailure.BAD_PASSWORD, user)
    return user
