"""
directory/notifications.py -- Contact-form emails.

notify_admin and auto_reply are sent best-effort after a submission.
send_reply is the admin's answer; it raises MailDeliveryError so the route
can refuse to record a reply that never left.

The reply goes out from the configured sender address with Reply-To set to
the admin, so the submitter's answer lands in the admin's inbox without the
server impersonating the admin's domain.
"""

from core.config import Settings
from core.mailer import FailoverMailer, render_email
from directory.models import ContactMessage


class ContactNotifier:
    def __init__(self, mailer: FailoverMailer, settings: Settings) -> None:
        self.mailer = mailer
        self.settings = settings

    def notify_admin(self, contact: ContactMessage) -> None:
        subject = f"New contact form submission: {contact.subject or 'General'}"
        html = render_email("contact_notification.html", contact=contact)
        self.mailer.send(self.settings.contact_email, subject, html, reply_to=contact.email)

    def auto_reply(self, contact: ContactMessage) -> None:
        html = render_email("contact_auto_reply.html", contact=contact)
        self.mailer.send(contact.email, "Thank you for contacting us", html)

    def send_reply(self, contact: ContactMessage, message: str, admin_name: str, admin_email: str) -> None:
        subject = f"Re: {contact.subject or 'Your inquiry'}"
        html = render_email(
            "contact_reply.html",
            contact=contact,
            message=message,
            admin_name=admin_name,
            admin_email=admin_email,
        )
        self.mailer.send(contact.email, subject, html, text=message, reply_to=admin_email)
