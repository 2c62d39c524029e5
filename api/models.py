"""
API request and response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
directory/models.py, which own the internal domain representation. Route
handlers map between the two with the from_* classmethods below.

Wire format: every field is camelCase on the wire (alias_generator=to_camel)
and snake_case in Python (populate_by_name=True). Every response is wrapped
in the ApiResponse envelope {success, message?, data?, errors?}.

Security: no response model has a password_hash, verification token or reset
token field, so those values cannot be serialized by accident.
"""

import re
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Role, UserAccount
from auth.tokens import PASSWORD_MAX_BYTES
from directory.models import CONTACT_SUBJECTS, ContactMessage, ContactStatus, Profile

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128

PROFILE_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
CONTACT_PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-()]+$")

T = TypeVar("T")

# Passwords are compared byte for byte, so they opt out of the model-wide
# whitespace stripping.
PasswordStr = Annotated[str, StringConstraints(strip_whitespace=False, max_length=PASSWORD_MAX_LENGTH)]


class ApiModel(BaseModel):
    """Base for every wire model: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class FieldError(ApiModel):
    field: str
    message: str


class ApiResponse(ApiModel, Generic[T]):
    """Uniform response envelope.

    success is False for every error response; errors carries field-level
    validation failures.
    """

    success: bool
    message: Optional[str] = None
    data: Optional[T] = None
    errors: Optional[list[FieldError]] = None


# ---------------------------------------------------------------------------
# Shared validators
# ---------------------------------------------------------------------------


def _check_password(value: str) -> str:
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes long")
    return value


def _check_confirmation(value: str, info: ValidationInfo, field: str) -> str:
    if field in info.data and value != info.data[field]:
        raise ValueError("Passwords do not match")
    return value


# ---------------------------------------------------------------------------
# Auth requests
# ---------------------------------------------------------------------------


class SignupRequest(ApiModel):
    """Request body for POST /api/auth/signup."""

    email: EmailStr
    password: PasswordStr
    confirm_password: PasswordStr
    full_name: str = Field(min_length=2, max_length=50)

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return _check_password(v)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        return _check_confirmation(v, info, "password")


class LoginRequest(ApiModel):
    email: EmailStr
    password: PasswordStr = Field(min_length=1)


class EmailRequest(ApiModel):
    """Body for resend-verification and forgot-password."""

    email: EmailStr


class ResetPasswordRequest(ApiModel):
    token: str = Field(min_length=1)
    new_password: PasswordStr
    confirm_password: PasswordStr

    @field_validator("new_password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return _check_password(v)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        return _check_confirmation(v, info, "new_password")


# ---------------------------------------------------------------------------
# User administration requests
# ---------------------------------------------------------------------------


class UserCreateRequest(ApiModel):
    """Request body for POST /api/users (admin)."""

    full_name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: PasswordStr
    role: Role = Role.USER
    is_email_verified: bool = False

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return _check_password(v)


class UserUpdateRequest(ApiModel):
    """Request body for PATCH /api/users/{id}. Omitted fields are unchanged."""

    full_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[PasswordStr] = None
    role: Optional[Role] = None
    is_email_verified: Optional[bool] = None

    @field_validator("password")
    @classmethod
    def password_length(cls, v: Optional[str]) -> Optional[str]:
        return _check_password(v) if v is not None else v


class UserStatusRequest(ApiModel):
    is_email_verified: bool


class UserRoleRequest(ApiModel):
    role: Role


class BulkDeleteRequest(ApiModel):
    user_ids: list[int] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Profile requests
# ---------------------------------------------------------------------------


class ProfileRequest(ApiModel):
    """Body for POST /api/profiles and PUT /api/profiles/{userId}.

    On update only the fields present in the body are applied
    (model_fields_set).
    """

    bio: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = None
    profile_image: Optional[str] = Field(default=None, max_length=500)

    @field_validator("phone_number")
    @classmethod
    def phone_format(cls, v: Optional[str]) -> Optional[str]:
        if v and not PROFILE_PHONE_PATTERN.match(v):
            raise ValueError("Please enter a valid phone number")
        return v


# ---------------------------------------------------------------------------
# Contact requests
# ---------------------------------------------------------------------------


class ContactSubmitRequest(ApiModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=20)
    subject: str = ""
    message: str = Field(min_length=1, max_length=2000)

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v: Optional[str]) -> Optional[str]:
        if v and not CONTACT_PHONE_PATTERN.match(v):
            raise ValueError("Please enter a valid phone number")
        return v or None

    @field_validator("subject")
    @classmethod
    def known_subject(cls, v: str) -> str:
        if v not in CONTACT_SUBJECTS:
            raise ValueError("Invalid subject")
        return v


class ContactStatusRequest(ApiModel):
    status: ContactStatus


class ContactReplyRequest(ApiModel):
    message: str = Field(min_length=1, max_length=2000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserOut(ApiModel):
    """Sanitized account: what any client may see about a user."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    full_name: str
    role: Role
    is_email_verified: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: UserAccount) -> "UserOut":
        return cls(
            id=account.id,
            email=account.email,
            full_name=account.full_name,
            role=account.role,
            is_email_verified=account.is_email_verified,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class UserDetailOut(UserOut):
    """Admin view: adds whether a password is set and pending token expiries."""

    has_password: bool = False
    email_verification_expires: Optional[str] = None
    password_reset_expires: Optional[str] = None

    @classmethod
    def from_account(cls, account: UserAccount) -> "UserDetailOut":
        return cls(
            **UserOut.from_account(account).model_dump(),
            has_password=bool(account.password_hash),
            email_verification_expires=account.email_verification_expires,
            password_reset_expires=account.password_reset_expires,
        )


class AuthData(ApiModel):
    user: UserOut
    access_token: str


class AccessTokenData(ApiModel):
    access_token: str


class UserData(ApiModel):
    user: UserOut


class UserDetailData(ApiModel):
    user: UserDetailOut


class UserPagination(ApiModel):
    current_page: int
    total_pages: int
    total_users: int
    limit: int
    has_next: bool
    has_prev: bool


class UserListStatistics(ApiModel):
    total_users: int
    verified_users: int
    users: int
    admins: int


class UserListData(ApiModel):
    users: list[UserOut]
    statistics: UserListStatistics
    pagination: UserPagination


class StatisticsOverview(ApiModel):
    total_users: int
    verified_users: int
    unverified_users: int
    users: int
    admins: int


class TrendPoint(ApiModel):
    date: str
    count: int


class UserStatisticsData(ApiModel):
    overview: StatisticsOverview
    registration_trends: list[TrendPoint]
    verification_rate: int


class BulkDeleteData(ApiModel):
    deleted_count: int
    deleted_users: list[UserOut]


class StatusChangeData(ApiModel):
    user: UserOut
    old_status: bool
    new_status: bool


class RoleChangeData(ApiModel):
    user: UserOut
    old_role: Role
    new_role: Role


class ProfileOut(ApiModel):
    """Public profile view. email is set only for the owner or an admin."""

    user_id: int
    full_name: str
    email: Optional[str] = None
    bio: str = ""
    location: str = ""
    country: str = ""
    phone_number: str = ""
    profile_image: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def build(cls, account: UserAccount, profile: Optional[Profile], show_email: bool) -> "ProfileOut":
        profile = profile or Profile(user_id=account.id)
        return cls(
            user_id=account.id,
            full_name=account.full_name,
            email=account.email if show_email else None,
            bio=profile.bio,
            location=profile.location,
            country=profile.country,
            phone_number=profile.phone_number,
            profile_image=profile.profile_image,
            created_at=profile.created_at or None,
            updated_at=profile.updated_at or None,
        )


class AdminResponseOut(ApiModel):
    message: str
    admin_name: str
    admin_email: str
    responded_at: str


class ContactOut(ApiModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    subject: str = ""
    message: str
    status: ContactStatus
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    admin_response: Optional[AdminResponseOut] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_contact(cls, contact: ContactMessage) -> "ContactOut":
        response = None
        if contact.admin_response is not None:
            r = contact.admin_response
            response = AdminResponseOut(
                message=r.message,
                admin_name=r.admin_name,
                admin_email=r.admin_email,
                responded_at=r.responded_at,
            )
        return cls(
            id=contact.id,
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
            subject=contact.subject,
            message=contact.message,
            status=contact.status,
            ip_address=contact.ip_address,
            user_agent=contact.user_agent,
            admin_response=response,
            created_at=contact.created_at,
            updated_at=contact.updated_at,
        )


class ContactReceipt(ApiModel):
    id: int
    name: str
    email: str


class ContactPagination(ApiModel):
    page: int
    limit: int
    total: int
    pages: int


class ContactListData(ApiModel):
    contacts: list[ContactOut]
    pagination: ContactPagination


class HealthResponse(ApiModel):
    """Response body for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"  # "healthy" | "degraded"
    version: str
    components: dict[str, str] = Field(default_factory=dict)  # name -> "ok" | "error"
