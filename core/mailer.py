"""
core/mailer.py -- Outbound email: transports, failover and template rendering.

Pattern: Strategy + Chain of Responsibility. Each transport knows how to
deliver one message through one channel. FailoverMailer holds an ordered list
of transports and walks it for every message, so a failing primary server
only affects the message being sent. There is no process-wide "primary is
down" flag; every call starts again at the first transport.

Callers decide what a delivery failure means:
  - flows that must tell the user (password reset request, resend
    verification, admin reply) call mailer.send() and let MailDeliveryError
    propagate;
  - best-effort notifications go through send_best_effort(), which logs the
    failure and returns False.

Templates live in core/templates/email/ and are rendered with Jinja2 with
autoescape enabled, so user-supplied values (names, contact messages) cannot
inject markup into outgoing HTML.

Layer rule: no imports from api/, auth/ or directory/.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Settings

logger = logging.getLogger("gatehouse.mail")

_TEMPLATE_DIR = Path(__file__).parent / "templates"


class MailDeliveryError(Exception):
    """Raised when no transport could deliver a message."""


@dataclass(frozen=True)
class OutgoingEmail:
    sender: str
    to: str
    subject: str
    html: str
    text: str | None = None
    reply_to: str | None = None


class MailTransport(Protocol):
    name: str

    def send(self, message: OutgoingEmail) -> None: ...


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class SMTPTransport:
    """Deliver through an SMTP server, over implicit TLS or STARTTLS.

    Port 465 or use_ssl=True selects SMTP_SSL; anything else connects in the
    clear and upgrades with STARTTLS before authenticating.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_ssl: bool = False,
        timeout: int = 30,
        name: str = "smtp",
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        # App passwords are often pasted with the display spaces left in.
        self.password = password.replace(" ", "")
        self.use_ssl = use_ssl or port == 465
        self.timeout = timeout
        self.name = name

    def send(self, message: OutgoingEmail) -> None:
        mime = _build_mime(message)
        recipient = parseaddr(message.to)[1] or message.to
        sender = parseaddr(message.sender)[1] or message.sender
        context = ssl.create_default_context()
        try:
            if self.use_ssl:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context) as server:
                    self._deliver(server, sender, recipient, mime)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.ehlo()
                    server.starttls(context=context)
                    self._deliver(server, sender, recipient, mime)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"{self.name}: {exc}") from exc

    def _deliver(self, server: smtplib.SMTP, sender: str, recipient: str, mime: MIMEMultipart) -> None:
        if self.username:
            server.login(self.username, self.password)
        server.sendmail(sender, [recipient], mime.as_string())


class ConsoleTransport:
    """Write messages to the log instead of sending them.

    Used when no SMTP server is configured (local development). Only the
    envelope is logged -- bodies carry single-use tokens.
    """

    name = "console"

    def send(self, message: OutgoingEmail) -> None:
        logger.info("[console mail] to=%s subject=%r", message.to, message.subject)


def _build_mime(message: OutgoingEmail) -> MIMEMultipart:
    mime = MIMEMultipart("alternative")
    mime["Subject"] = message.subject
    mime["From"] = message.sender
    mime["To"] = message.to
    if message.reply_to:
        mime["Reply-To"] = message.reply_to
    mime.attach(MIMEText(message.text or message.html, "plain", "utf-8"))
    mime.attach(MIMEText(message.html, "html", "utf-8"))
    return mime


# ---------------------------------------------------------------------------
# Failover
# ---------------------------------------------------------------------------


class FailoverMailer:
    """Try each transport in order until one accepts the message."""

    def __init__(self, transports: Sequence[MailTransport], default_sender: str) -> None:
        if not transports:
            raise ValueError("FailoverMailer needs at least one transport")
        self.transports = list(transports)
        self.default_sender = default_sender

    def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        *,
        sender: str | None = None,
        reply_to: str | None = None,
    ) -> None:
        message = OutgoingEmail(
            sender=sender or self.default_sender,
            to=to,
            subject=subject,
            html=html,
            text=text,
            reply_to=reply_to,
        )
        failures: list[str] = []
        for transport in self.transports:
            try:
                transport.send(message)
            except MailDeliveryError as exc:
                logger.warning("Mail transport %s failed for %r: %s", transport.name, subject, exc)
                failures.append(str(exc))
                continue
            logger.info("Mail %r delivered to %s via %s", subject, to, transport.name)
            return
        raise MailDeliveryError("; ".join(failures))


def build_mailer(settings: Settings) -> FailoverMailer:
    """Assemble the transport chain from settings.

    Order: primary SMTP, fallback SMTP. When neither host is set the chain is
    a single ConsoleTransport.
    """
    transports: list[MailTransport] = []
    if settings.smtp_host:
        transports.append(
            SMTPTransport(
                settings.smtp_host,
                settings.smtp_port,
                settings.smtp_username,
                settings.smtp_password,
                use_ssl=settings.smtp_use_ssl,
                timeout=settings.smtp_timeout,
                name="primary",
            )
        )
    if settings.fallback_smtp_host:
        transports.append(
            SMTPTransport(
                settings.fallback_smtp_host,
                settings.fallback_smtp_port,
                settings.fallback_smtp_username,
                settings.fallback_smtp_password,
                timeout=settings.smtp_timeout,
                name="fallback",
            )
        )
    if not transports:
        logger.warning("No SMTP host configured; outgoing mail will only be logged")
        transports.append(ConsoleTransport())
    return FailoverMailer(transports, default_sender=settings.mail_from)


def send_best_effort(send: Callable[..., object], *args, **kwargs) -> bool:
    """Call a mail-sending function, logging and swallowing delivery failures.

    Returns True when the message went out. Only MailDeliveryError is
    swallowed -- template or programming errors still propagate.
    """
    try:
        send(*args, **kwargs)
    except MailDeliveryError:
        logger.exception("Best-effort email %s failed", getattr(send, "__name__", send))
        return False
    return True


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@lru_cache
def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(_TEMPLATE_DIR),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_email(template: str, **context) -> str:
    """Render core/templates/email/<template> with the given context."""
    context.setdefault("year", datetime.now(timezone.utc).year)
    return _environment().get_template(f"email/{template}").render(**context)
