"""
auth/notifications.py -- Account lifecycle emails.

AccountNotifier renders the account templates and hands them to the injected
mailer. Every method raises MailDeliveryError on failure; whether that
failure reaches the user is the caller's decision (see auth/service.py).

Links point at the frontend (Settings.client_url), which calls back into the
API with the token and email as query parameters.

Layer rule: no imports from api/ or directory/.
"""

from __future__ import annotations

from urllib.parse import urlencode

from auth.models import UserAccount
from core.config import Settings
from core.mailer import FailoverMailer, render_email


class AccountNotifier:
    def __init__(self, mailer: FailoverMailer, settings: Settings) -> None:
        self.mailer = mailer
        self.settings = settings

    def _link(self, path: str, **params: str) -> str:
        return f"{self.settings.client_url.rstrip('/')}{path}?{urlencode(params)}"

    def send_verification(self, account: UserAccount) -> None:
        url = self._link("/verify-email", token=account.email_verification_token or "", email=account.email)
        html = render_email(
            "verify_email.html",
            full_name=account.full_name,
            verify_url=url,
            expires_hours=self.settings.email_verification_expire_seconds // 3600,
        )
        self.mailer.send(account.email, "Verify your email address", html)

    def send_welcome(self, account: UserAccount) -> None:
        html = render_email(
            "welcome.html",
            full_name=account.full_name,
            login_url=f"{self.settings.client_url.rstrip('/')}/login",
        )
        self.mailer.send(account.email, "Welcome! Your email is verified", html)

    def send_password_reset(self, account: UserAccount, token: str) -> None:
        url = self._link("/reset-password", token=token, email=account.email)
        html = render_email(
            "password_reset.html",
            full_name=account.full_name,
            reset_url=url,
            expires_minutes=self.settings.reset_token_expire_seconds // 60,
        )
        self.mailer.send(account.email, "Password reset request", html)

    def send_password_reset_success(self, account: UserAccount) -> None:
        html = render_email("password_reset_success.html", full_name=account.full_name)
        self.mailer.send(account.email, "Your password has been reset", html)
