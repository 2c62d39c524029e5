"""
auth/tokens.py -- JWT, password hashing, single-use token and cookie utilities.

Security design decisions:
  JWT: python-jose with HS256. Three token kinds (access, refresh, reset) are
       each signed with their own secret from Settings and carry a "type"
       claim, so a token of one kind never validates as another. Claims are
       sub (account id as a string), type, iat and exp.

       decode_token() raises exactly one of TokenMalformed,
       TokenSignatureInvalid or TokenExpired. The route and service layers
       map each to a fixed, non-leaking message.

  Passwords: bcrypt used directly, cost factor from Settings.bcrypt_rounds.
       _DUMMY_HASH lets the login path spend the same bcrypt time on unknown
       emails as on known ones, so response time does not reveal whether an
       account exists.

  Verification tokens: secrets.token_hex(32), 256 bits of entropy, stored
       as-is with an expiry. They are single-use; the service clears them on
       consumption.

  Refresh cookie: "refreshToken", httpOnly, secure and SameSite=None in
       production, SameSite=Lax in development. Max-age equals the refresh
       token lifetime.

Layer rule: no imports from api/ or directory/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Response
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("gatehouse.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

REFRESH_COOKIE = "refreshToken"

# bcrypt refuses longer input outright.
PASSWORD_MAX_BYTES = 72

ACCESS = "access"
REFRESH = "refresh"
RESET = "reset"

_SECRETS = {
    ACCESS: _settings.secret_key,
    REFRESH: _settings.refresh_secret_key,
    RESET: _settings.reset_secret_key,
}


class TokenError(Exception):
    """Base class for token validation failures."""


class TokenMalformed(TokenError):
    """Not a JWT at all, or missing the claims every token must carry."""


class TokenSignatureInvalid(TokenError):
    """Well-formed but signed with another key, or of another token kind."""


class TokenExpired(TokenError):
    """Signature is valid but exp is in the past."""


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt rejects input longer than PASSWORD_MAX_BYTES, so callers validate
    the encoded length first.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    encoded = plain.encode("utf-8")
    if len(encoded) > PASSWORD_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except ValueError:
        # Corrupt or non-bcrypt hash in the store.
        logger.warning("verify_password: stored hash is not a valid bcrypt hash")
        return False


# Pre-computed at import so the first failed login is not faster than the rest.
_DUMMY_HASH: str = hash_password("gatehouse-timing-equalization")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison whose result is discarded."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------


def _create_token(user_id: int, kind: str, lifetime_seconds: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": kind,
        "iat": now,
        "exp": now + timedelta(seconds=lifetime_seconds),
        # Two tokens minted in the same second must still differ, so a
        # rotated refresh token never equals the one it replaced.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, _SECRETS[kind], algorithm=_ALGORITHM)


def create_access_token(user_id: int, expire_seconds: int | None = None) -> str:
    """Short-lived bearer token. Returned in response bodies, never stored."""
    if expire_seconds is None:
        expire_seconds = _settings.access_token_expire_seconds
    return _create_token(user_id, ACCESS, expire_seconds)


def create_refresh_token(user_id: int, expire_seconds: int | None = None) -> str:
    """Long-lived token carried only in the refresh cookie."""
    if expire_seconds is None:
        expire_seconds = _settings.refresh_token_expire_seconds
    return _create_token(user_id, REFRESH, expire_seconds)


def create_reset_token(user_id: int, expire_seconds: int | None = None) -> str:
    """Signed password-reset token; the service also stores it on the account."""
    if expire_seconds is None:
        expire_seconds = _settings.reset_token_expire_seconds
    return _create_token(user_id, RESET, expire_seconds)


def decode_token(token: str, kind: str) -> int:
    """Validate a token of the given kind and return its subject account id.

    Raises:
      TokenMalformed: not a parseable JWT, or sub is missing / not an id.
      TokenExpired: signature valid, exp in the past.
      TokenSignatureInvalid: wrong key, tampered, or a different token kind.
    """
    if not token:
        raise TokenMalformed("empty token")
    try:
        unverified = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise TokenMalformed(str(exc)) from exc

    try:
        payload = jwt.decode(token, _SECRETS[kind], algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired(str(exc)) from exc
    except JWTError as exc:
        raise TokenSignatureInvalid(str(exc)) from exc

    if payload.get("type") != kind:
        raise TokenSignatureInvalid(f"expected {kind} token, got {unverified.get('type')!r}")
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenMalformed("missing or invalid subject") from exc


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header value."""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        return token or None
    return None


# ---------------------------------------------------------------------------
# Single-use verification tokens
# ---------------------------------------------------------------------------


def generate_verification_token() -> str:
    """Return a random 64-char hex token (256 bits)."""
    return secrets.token_hex(32)


# ---------------------------------------------------------------------------
# Refresh cookie
# ---------------------------------------------------------------------------


def set_refresh_cookie(response: Response, token: str) -> None:
    """Attach the refresh token to the response as an httpOnly cookie."""
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=token,
        httponly=True,
        secure=_settings.is_production,
        samesite="none" if _settings.is_production else "lax",
        max_age=_settings.refresh_token_expire_seconds,
        path="/",
    )


def clear_refresh_cookie(response: Response) -> None:
    """Expire the refresh cookie with the same attributes it was set with."""
    response.delete_cookie(
        key=REFRESH_COOKIE,
        httponly=True,
        secure=_settings.is_production,
        samesite="none" if _settings.is_production else "lax",
        path="/",
    )
