"""
auth/service.py -- Credential lifecycle: signup, login, refresh, verification
and password reset.

Pattern: Service layer. AccountService owns every state transition of a
UserAccount. Routes call it with validated input and turn its return values
into responses; it raises core.errors exceptions for every client-facing
failure and never picks HTTP status codes itself.

State machine per account:
  Unverified -> Verified                 (verify_email)
  NoResetPending -> ResetPending         (request_password_reset)
  ResetPending -> NoResetPending         (reset_password)

Email dispatch policy:
  signup verification, welcome and reset confirmation are best-effort. They
  are handed to the optional `schedule` callable (the route passes
  BackgroundTasks.add_task so they run after the response) and failures are
  logged, never raised.
  resend verification and the reset request send inline and surface
  failure as UpstreamFailureError (500). The asymmetry with signup is
  intentional: on those two flows the email is the whole point of the call.

Known limitation: token consumption is read-then-write with no
compare-and-clear, so two concurrent submissions of the same valid token can
both succeed. Refresh tokens have no server-side revocation list; logout only
clears the cookie.

Layer rule: no imports from api/ or directory/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from auth.models import Role, TokenPair, UserAccount
from auth.notifications import AccountNotifier
from auth.store import DuplicateKeyError, UserStore
from auth.tokens import (
    REFRESH,
    RESET,
    TokenExpired,
    TokenError,
    burn_password_check,
    create_access_token,
    create_refresh_token,
    create_reset_token,
    decode_token,
    generate_verification_token,
    hash_password,
    verify_password,
)
from core.config import Settings
from core.db import format_timestamp
from core.errors import (
    DuplicateAccountError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    NotFoundError,
    UnauthenticatedError,
    UpstreamFailureError,
    ValidationError,
)
from core.mailer import MailDeliveryError, send_best_effort

logger = logging.getLogger("gatehouse.auth")

Scheduler = Callable[..., Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AccountService:
    def __init__(self, store: UserStore, notifier: AccountNotifier, settings: Settings) -> None:
        self.store = store
        self.notifier = notifier
        self.settings = settings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _dispatch(self, schedule: Scheduler | None, send: Callable[..., None], *args) -> None:
        """Run a best-effort email now, or hand it to the scheduler."""
        if schedule is None:
            send_best_effort(send, *args)
        else:
            schedule(send_best_effort, send, *args)

    def _set_verification(self, account: UserAccount) -> None:
        account.email_verification_token = generate_verification_token()
        expires = _now() + timedelta(seconds=self.settings.email_verification_expire_seconds)
        account.email_verification_expires = format_timestamp(expires)

    @staticmethod
    def _clear_verification(account: UserAccount) -> None:
        account.email_verification_token = None
        account.email_verification_expires = None

    def _require(self, user_id: int) -> UserAccount:
        account = self.store.get_by_id(user_id)
        if account is None:
            raise NotFoundError("User not found")
        return account

    # ------------------------------------------------------------------
    # Signup and login
    # ------------------------------------------------------------------

    def signup(self, email: str, password: str, full_name: str, schedule: Scheduler | None = None) -> UserAccount:
        """Create an unverified account and send its verification email.

        The account exists even if the email never goes out; the user can
        ask for a resend.
        """
        account = UserAccount(email=email, full_name=full_name.strip(), password_hash=hash_password(password))
        self._set_verification(account)
        try:
            self.store.create_user(account)
        except DuplicateKeyError as exc:
            raise DuplicateAccountError() from exc
        logger.info("Account %d created", account.id)
        self._dispatch(schedule, self.notifier.send_verification, account)
        return account

    def authenticate(self, email: str, password: str) -> UserAccount:
        """Return the account for valid credentials of a verified user.

        Every failure costs one bcrypt comparison, so timing does not reveal
        whether the email exists. An unverified account is rejected with the
        same error whatever the password.
        """
        account = self.store.get_by_email(email)
        if account is None:
            burn_password_check(password)
            raise InvalidCredentialsError()
        password_ok = verify_password(password, account.password_hash)
        if not account.is_email_verified:
            raise EmailNotVerifiedError()
        if not password_ok:
            raise InvalidCredentialsError()
        return account

    def issue_session(self, account: UserAccount) -> TokenPair:
        return TokenPair(
            access_token=create_access_token(account.id),
            refresh_token=create_refresh_token(account.id),
        )

    def refresh(self, refresh_token: str) -> tuple[UserAccount, TokenPair]:
        """Mint a new access + refresh pair from a valid refresh token.

        Raises TokenError subclasses for bad tokens (the route maps them and
        clears the cookie) and UnauthenticatedError when the subject is gone.
        """
        user_id = decode_token(refresh_token, REFRESH)
        account = self.store.get_by_id(user_id)
        if account is None:
            raise UnauthenticatedError("User not found")
        return account, self.issue_session(account)

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def resend_verification(self, email: str) -> None:
        """Replace the pending verification token and send it again."""
        account = self.store.get_by_email(email)
        if account is None:
            raise NotFoundError("User not found")
        if account.is_email_verified:
            raise ValidationError("Email is already verified")
        self._set_verification(account)
        self.store.save(account)
        try:
            self.notifier.send_verification(account)
        except MailDeliveryError as exc:
            logger.exception("Verification resend failed for account %d", account.id)
            raise UpstreamFailureError("Failed to send verification email. Please try again later.") from exc

    def verify_email(self, token: str, email: str, schedule: Scheduler | None = None) -> UserAccount:
        """Consume a verification token and mark the account verified."""
        account = self.store.find_by_verification_token(email, token, format_timestamp(_now()))
        if account is None:
            raise InvalidOrExpiredTokenError("Invalid or expired verification token")
        account.is_email_verified = True
        self._clear_verification(account)
        self.store.save(account)
        logger.info("Account %d verified", account.id)
        self._dispatch(schedule, self.notifier.send_welcome, account)
        return account

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> None:
        """Issue and email a reset token if the account exists.

        Unknown emails return silently so the caller's response is the same
        either way.
        """
        account = self.store.get_by_email(email)
        if account is None:
            logger.info("Password reset requested for unknown email")
            return
        token = create_reset_token(account.id)
        account.password_reset_token = token
        expires = _now() + timedelta(seconds=self.settings.reset_token_expire_seconds)
        account.password_reset_expires = format_timestamp(expires)
        self.store.save(account)
        try:
            self.notifier.send_password_reset(account, token)
        except MailDeliveryError as exc:
            logger.exception("Password reset email failed for account %d", account.id)
            raise UpstreamFailureError("Failed to send password reset email. Please try again later.") from exc

    def check_reset_token(self, token: str) -> UserAccount:
        """Validate a reset token against its signature and the stored copy."""
        try:
            user_id = decode_token(token, RESET)
        except TokenExpired as exc:
            raise InvalidOrExpiredTokenError("Reset token has expired") from exc
        except TokenError as exc:
            raise InvalidOrExpiredTokenError("Invalid reset token") from exc
        account = self.store.find_by_reset_token(user_id, token, format_timestamp(_now()))
        if account is None:
            raise InvalidOrExpiredTokenError("Invalid or expired reset token")
        return account

    def reset_password(self, token: str, new_password: str, schedule: Scheduler | None = None) -> UserAccount:
        account = self.check_reset_token(token)
        account.password_hash = hash_password(new_password)
        account.password_reset_token = None
        account.password_reset_expires = None
        self.store.save(account)
        logger.info("Password reset completed for account %d", account.id)
        self._dispatch(schedule, self.notifier.send_password_reset_success, account)
        return account

    # ------------------------------------------------------------------
    # Administrative account management
    # ------------------------------------------------------------------

    def create_account(
        self,
        email: str,
        password: str,
        full_name: str,
        role: Role = Role.USER,
        is_email_verified: bool = False,
    ) -> UserAccount:
        """Create an account directly, without the verification email."""
        account = UserAccount(
            email=email,
            full_name=full_name.strip(),
            password_hash=hash_password(password),
            role=role,
            is_email_verified=is_email_verified,
        )
        try:
            self.store.create_user(account)
        except DuplicateKeyError as exc:
            raise DuplicateAccountError("User with this email already exists") from exc
        logger.info("Account %d created with role %s", account.id, account.role.value)
        return account

    def update_account(
        self,
        account: UserAccount,
        *,
        full_name: str | None = None,
        email: str | None = None,
        password: str | None = None,
        role: Role | None = None,
        is_email_verified: bool | None = None,
    ) -> UserAccount:
        """Apply the given changes and persist them.

        An email change drops verification: the new address has to be
        verified again.
        """
        if full_name is not None:
            account.full_name = full_name.strip()
        if email is not None and email.strip().lower() != account.email:
            account.email = email
            account.is_email_verified = False
            self._clear_verification(account)
        if password is not None:
            account.password_hash = hash_password(password)
        if role is not None:
            account.role = role
        if is_email_verified is not None:
            self.set_verified(account, is_email_verified, persist=False)
        try:
            self.store.save(account)
        except DuplicateKeyError as exc:
            raise DuplicateAccountError("Email is already in use") from exc
        return account

    def set_verified(self, account: UserAccount, verified: bool, persist: bool = True) -> UserAccount:
        account.is_email_verified = verified
        if verified:
            self._clear_verification(account)
        if persist:
            self.store.save(account)
        return account

    def get_account(self, user_id: int) -> UserAccount:
        return self._require(user_id)
