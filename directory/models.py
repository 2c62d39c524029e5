"""
directory/models.py -- Domain dataclasses for profiles and contact messages.

These are pure data containers with zero logic. Persistence and queries live
in directory/store.py; the wire representation lives in api/models.py.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ContactStatus(str, Enum):
    NEW = "new"
    READ = "read"
    REPLIED = "replied"
    ARCHIVED = "archived"


# Allowed values for ContactMessage.subject. "" means "not specified".
CONTACT_SUBJECTS: tuple[str, ...] = (
    "",
    "General Inquiry",
    "Project Consultation",
    "Partnership",
    "Careers",
    "Other",
)


@dataclass
class Profile:
    """Optional public details attached one-to-one to a UserAccount.

    user_id is the owning account's id. The store allows at most one profile
    per account and deletes it together with the account.
    """

    user_id: int
    bio: str = ""
    location: str = ""
    country: str = ""
    phone_number: str = ""
    profile_image: str = ""
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class AdminResponse:
    """The reply an admin sent for a contact message."""

    message: str
    admin_name: str
    admin_email: str
    responded_at: str  # ISO 8601


@dataclass
class ContactMessage:
    """A contact-form submission and its handling state.

    ip_address and user_agent are captured from the submitting request.
    admin_response is set only after a reply was actually delivered.
    """

    name: str
    email: str
    message: str
    subject: str = ""
    phone: Optional[str] = None
    status: ContactStatus = ContactStatus.NEW
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    admin_response: Optional[AdminResponse] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
