"""
auth/tokens.py -- Access token codec and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (user id), email, role, iat and exp. TokenCodec is constructed once
       in the lifespan with the secret and TTL from Settings and lives on
       app.state -- there is no module-level key.

       decode() raises InvalidTokenError for every failure, including input
       that is not a string at all. The reason string is safe to return to
       the caller (it never echoes token contents).

  Passwords: bcrypt directly (no passlib wrapper). Bcrypt is the right choice
       for low-entropy secrets because its cost factor makes brute-force
       expensive. verify_password() returns False on any malformed hash
       rather than raising, so a corrupted row can never turn a login into
       a 500.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

import logging
import time

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.models import TokenPayload

logger = logging.getLogger("adminpanel.auth")

_ALGORITHM = "HS256"
_BEARER_SCHEME = "bearer"

# bcrypt input limit.
MAX_PASSWORD_BYTES = 72


class InvalidTokenError(Exception):
    """Raised by TokenCodec.decode(). str(exc) is the caller-safe reason."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only reads the first 72 bytes (older releases truncate, newer ones
    raise). Longer passwords are refused here with ValueError so every bcrypt
    version behaves the same; callers report it to the operator.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes (UTF-8).")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Over-long input never matches: it could not have been hashed.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except Exception:
        return False


# ---------------------------------------------------------------------------
# Bearer header parsing
# ---------------------------------------------------------------------------


def extract_bearer_token(header_value: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" value.

    A missing or malformed header is a normal state (anonymous request), so
    this returns None instead of raising.
    """
    if not header_value or not isinstance(header_value, str):
        return None
    parts = header_value.strip().split()
    if len(parts) != 2 or parts[0].lower() != _BEARER_SCHEME:
        return None
    return parts[1]


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Issues and verifies signed, time-bound identity tokens.

    Usage:
        codec = TokenCodec(settings.secret_key, settings.token_expire_seconds)
        token = codec.issue(user.id, user.email, user.role)
        payload = codec.decode(token)   # raises InvalidTokenError
    """

    def __init__(self, secret_key: str, ttl_seconds: int = 24 * 60 * 60) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds

    def issue(self, user_id: int, email: str, role: str) -> str:
        now = int(time.time())
        claims = {
            # python-jose requires sub to be a string
            "sub": str(user_id),
            "email": email,
            "role": role,
            "iat": now,
            "exp": now + self.ttl_seconds,
        }
        return jwt.encode(claims, self._secret_key, algorithm=_ALGORITHM)

    def decode(self, token: str) -> TokenPayload:
        """Verify signature, structure and expiry; return the payload.

        Raises InvalidTokenError with one of these reasons:
          "Token expired", "Invalid token signature", "Malformed token",
          "Invalid token claims".
        """
        if not isinstance(token, str) or not token:
            raise InvalidTokenError("Malformed token")
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise InvalidTokenError("Token expired") from exc
        except JWTClaimsError as exc:
            raise InvalidTokenError("Invalid token claims") from exc
        except JWTError as exc:
            if "Signature verification failed" in str(exc):
                raise InvalidTokenError("Invalid token signature") from exc
            raise InvalidTokenError("Malformed token") from exc
        except Exception as exc:
            # Attacker-controlled input must never surface as an unhandled fault.
            logger.debug("Unexpected token decode failure: %s", type(exc).__name__)
            raise InvalidTokenError("Malformed token") from exc

        payload = _claims_to_payload(claims)
        if payload.expires_at <= int(time.time()):
            raise InvalidTokenError("Token expired")
        return payload


def _claims_to_payload(claims: dict) -> TokenPayload:
    try:
        payload = TokenPayload(
            user_id=int(claims["sub"]),
            email=str(claims["email"]),
            role=str(claims["role"]),
            issued_at=int(claims["iat"]),
            expires_at=int(claims["exp"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidTokenError("Invalid token claims") from exc
    if payload.expires_at <= payload.issued_at:
        raise InvalidTokenError("Invalid token claims")
    return payload
