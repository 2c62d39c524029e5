"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/auth/signup               -- create an unverified account (201)
  POST /api/auth/login                -- password login; access token + refresh cookie
  POST /api/auth/refresh-token        -- rotate the access/refresh pair from the cookie
  POST /api/auth/logout               -- clear the refresh cookie
  POST /api/auth/resend-verification  -- replace and resend the verification token
  GET  /api/auth/verify-email         -- consume a verification token
  POST /api/auth/forgot-password      -- issue a reset token (same answer for unknown emails)
  GET  /api/auth/verify-reset-token   -- check a reset token without consuming it
  POST /api/auth/reset-password       -- set a new password with a reset token
  GET  /api/auth/me                   -- current account (requires auth)

Security:
  login, signup and forgot-password are rate-limited per client IP.
  AccountService.authenticate() provides timing equalization; never inline
  get_by_email() + verify_password() here.
  The refresh token only ever travels in the httpOnly cookie, never in a body.
  Any refresh failure clears the cookie.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_LIMIT, limiter
from api.models import (
    AccessTokenData,
    ApiResponse,
    AuthData,
    EmailRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UserData,
    UserOut,
)
from api.responses import fail, respond
from auth.dependencies import get_current_user
from auth.models import UserAccount
from auth.service import AccountService
from auth.tokens import REFRESH_COOKIE, TokenExpired, TokenError, clear_refresh_cookie, set_refresh_cookie
from core.errors import UnauthenticatedError, ValidationError

# Auth policy:
# - everything under /api/auth is public except GET /api/auth/me,
#   which requires a valid bearer access token (get_current_user).
router = APIRouter()

_FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent"


def _service(request: Request) -> AccountService:
    return request.app.state.account_service


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Signup, login, session
# ---------------------------------------------------------------------------


@limiter.limit(LOGIN_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/signup", response_model=ApiResponse[UserData], status_code=201)
def signup(request: Request, body: SignupRequest, background_tasks: BackgroundTasks) -> JSONResponse:
    """Create an unverified account and queue its verification email.

    The response does not wait for the email; a delivery failure is logged
    and the user can ask for a resend.
    """
    account = _service(request).signup(
        body.email, body.password, body.full_name, schedule=background_tasks.add_task
    )
    return respond(
        UserData(user=UserOut.from_account(account)),
        "User created successfully. Please check your email to verify your account.",
        status_code=201,
    )


@limiter.limit(LOGIN_LIMIT)  # brute-force mitigation
@router.post("/auth/login", response_model=ApiResponse[AuthData])
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the refresh cookie.

    Unknown email and wrong password return the same 401 "Invalid
    credentials". An unverified account gets its own 401 whatever the
    password was.
    """
    service = _service(request)
    account = service.authenticate(body.email, body.password)
    tokens = service.issue_session(account)
    resp = respond(AuthData(user=UserOut.from_account(account), access_token=tokens.access_token))
    set_refresh_cookie(resp, tokens.refresh_token)
    return _no_store(resp)


@router.post("/auth/refresh-token", response_model=ApiResponse[AccessTokenData])
def refresh_token(request: Request) -> JSONResponse:
    """Exchange the refresh cookie for a new access token and a rotated cookie.

    Refresh tokens are not tracked server-side, so the replaced token stays
    valid until it expires.
    """
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        return fail("No refresh token provided", 401)
    try:
        _, tokens = _service(request).refresh(token)
    except TokenExpired:
        resp = fail("Refresh token expired", 401)
        clear_refresh_cookie(resp)
        return resp
    except TokenError:
        resp = fail("Invalid refresh token", 401)
        clear_refresh_cookie(resp)
        return resp
    except UnauthenticatedError as exc:
        resp = fail(exc.message, 401)
        clear_refresh_cookie(resp)
        return resp
    resp = respond(AccessTokenData(access_token=tokens.access_token))
    set_refresh_cookie(resp, tokens.refresh_token)
    return _no_store(resp)


@router.post("/auth/logout")
def logout() -> JSONResponse:
    """Clear the refresh cookie. Access tokens simply run out."""
    resp = respond(message="Logged out successfully")
    clear_refresh_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@router.post("/auth/resend-verification")
def resend_verification(request: Request, body: EmailRequest) -> JSONResponse:
    _service(request).resend_verification(body.email)
    return respond(message="Verification email sent successfully")


@router.get("/auth/verify-email", response_model=ApiResponse[UserData])
def verify_email(
    request: Request,
    background_tasks: BackgroundTasks,
    token: Optional[str] = None,
    email: Optional[str] = None,
) -> JSONResponse:
    if not token or not email:
        raise ValidationError("Missing token or email")
    account = _service(request).verify_email(token, email, schedule=background_tasks.add_task)
    return respond(
        UserData(user=UserOut.from_account(account)),
        "Email verified successfully. You can now log in.",
    )


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit(LOGIN_LIMIT)
@router.post("/auth/forgot-password")
def forgot_password(request: Request, body: EmailRequest) -> JSONResponse:
    """Start a password reset.

    Known and unknown emails get the identical 200. A mail failure for a
    real account surfaces as 500 so the user knows to retry.
    """
    _service(request).request_password_reset(body.email)
    return respond(message=_FORGOT_PASSWORD_MESSAGE)


@router.get("/auth/verify-reset-token")
def verify_reset_token(request: Request, token: Optional[str] = None) -> JSONResponse:
    """Read-only check used by the reset form before it asks for a password."""
    if not token:
        raise ValidationError("Reset token is required")
    _service(request).check_reset_token(token)
    return respond(message="Reset token is valid")


@router.post("/auth/reset-password")
def reset_password(request: Request, body: ResetPasswordRequest, background_tasks: BackgroundTasks) -> JSONResponse:
    _service(request).reset_password(body.token, body.new_password, schedule=background_tasks.add_task)
    return respond(message="Password has been reset successfully")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=ApiResponse[UserData])
def me(current_user: UserAccount = Depends(get_current_user)) -> JSONResponse:
    """Return the account behind the bearer token."""
    return respond(UserData(user=UserOut.from_account(current_user)))
