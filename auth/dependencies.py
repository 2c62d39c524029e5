"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and
role gating.

Identity comes from one place only: an "Authorization: Bearer <access token>"
header. The refresh cookie is never accepted here; it is only read by the
refresh endpoint.

try_get_current_user() is the soft variant (returns None on any failure).
get_current_user() raises UnauthenticatedError (401) with one of three fixed
messages: no token, invalid token, user not found.
require_roles(allowed) wraps get_current_user() and raises ForbiddenError
(403) when the caller's role is not in the allow-set.

Layer rule: no imports from api/ or directory/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from fastapi import Depends, Request

from auth.models import Role, UserAccount
from auth.store import UserStore
from auth.tokens import ACCESS, TokenError, decode_token, extract_bearer_token
from core.errors import ForbiddenError, UnauthenticatedError


def try_get_current_user(request: Request) -> UserAccount | None:
    """Resolve the caller from the bearer token, or return None.

    Never raises -- routes with optional identity (public profile view) use
    this directly.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        return None
    try:
        user_id = decode_token(token, ACCESS)
    except TokenError:
        return None
    user_store: UserStore = request.app.state.user_store
    return user_store.get_by_id(user_id)


def get_current_user(request: Request) -> UserAccount:
    """Return the authenticated account or raise UnauthenticatedError."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise UnauthenticatedError("Not authorized, no token")
    try:
        user_id = decode_token(token, ACCESS)
    except TokenError:
        raise UnauthenticatedError("Not authorized, invalid token") from None
    user_store: UserStore = request.app.state.user_store
    account = user_store.get_by_id(user_id)
    if account is None:
        raise UnauthenticatedError("Not authorized, user not found")
    return account


def require_roles(allowed: Iterable[Role]) -> Callable[..., UserAccount]:
    """Build a dependency that admits only callers whose role is in allowed.

    Usage:
        @router.get("/users", dependencies=[Depends(require_roles({Role.ADMIN}))])
    """
    allowed_roles = frozenset(allowed)

    def _check(user: UserAccount = Depends(get_current_user)) -> UserAccount:
        if user.role not in allowed_roles:
            raise ForbiddenError(f"User role '{user.role.value}' is not authorized to access this route")
        return user

    return _check


require_admin = require_roles({Role.ADMIN})
