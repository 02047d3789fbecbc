"""
auth/dependencies.py -- FastAPI Depends() gates for authentication and roles.

Gates run as an explicit, ordered dependency list on each router:

    router = APIRouter(dependencies=[Depends(authenticate), Depends(require_admin)])

authenticate() is the authentication gate. Each request walks:
  1. Authorization: Bearer <token> header present?   else 401 "Access token required"
  2. Token decodes (signature, structure, expiry)?   else 401 <decode reason>
  3. User with the token's subject id still exists?  else 401 "User not found"
  4. That user is active?                            else 401 "User account is deactivated"
  5. Attach Identity to request.state.identity.

Steps 3 and 4 read live storage on every request. Tokens are never revoked
server-side, so the active flag is the only way to cut off a still-valid
token -- and it takes effect on the very next request.

require_role() builds an authorization gate. It reads only the identity the
authentication gate attached; it never looks at the token itself.

Both are plain `def` so FastAPI runs them in its threadpool -- the storage
lookup does not block the event loop.

Layer rule: no imports from audit/. auth/dependencies.py may import from
fastapi because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.models import Identity, Role
from auth.store import UserStore
from auth.tokens import InvalidTokenError, TokenCodec, extract_bearer_token
from core.errors import AuthenticationError, AuthorizationError


def authenticate(request: Request) -> Identity:
    """Authentication gate. Raises AuthenticationError (401) on any failure."""
    codec: TokenCodec = request.app.state.token_codec
    user_store: UserStore = request.app.state.user_store

    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise AuthenticationError("Access token required")

    try:
        payload = codec.decode(token)
    except InvalidTokenError as exc:
        raise AuthenticationError(exc.reason) from exc

    user = user_store.get_by_id(payload.user_id)
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    identity = Identity(id=user.id, email=user.email, role=user.role, is_active=user.is_active)
    request.state.identity = identity
    return identity


def current_identity(request: Request) -> Identity:
    """Return the identity attached by authenticate(), or raise 401.

    Handlers declare this after the router-level gates have run.
    """
    identity: Identity | None = getattr(request.state, "identity", None)
    if identity is None:
        raise AuthenticationError("Authentication required")
    return identity


def require_role(*allowed: Role) -> Callable[[Request], Identity]:
    """Build an authorization gate admitting only the listed roles.

    No identity attached -> 401; identity with another role -> 403.
    """
    allowed_values = frozenset(role.value for role in allowed)

    def check_role(request: Request) -> Identity:
        identity = current_identity(request)
        if identity.role not in allowed_values:
            raise AuthorizationError("Insufficient permissions")
        return identity

    check_role.__name__ = f"require_role_{'_'.join(sorted(allowed_values)).lower()}"
    return check_role


require_admin = require_role(Role.ADMIN, Role.SUPER_ADMIN)
require_super_admin = require_role(Role.SUPER_ADMIN)
