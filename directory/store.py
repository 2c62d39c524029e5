"""
directory/store.py -- SQLAlchemy-backed persistence for profiles and contact
messages.

Pattern: Repository + Data Mapper, as in auth/store.py. DirectoryStore is the
repository; the _row_to_* functions are the mappers.

Profiles reference accounts by user_id. The UNIQUE constraint on user_id
makes "one profile per account" a storage guarantee; a second insert raises
DuplicateKeyError. Deleting an account must call delete_profile() (or
delete_profiles() for bulk deletes) so no profile outlives its owner.

admin_response is a small JSON object serialized as text.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = DirectoryStore("sqlite:///gatehouse.db")
    store.create_profile(Profile(user_id=1, bio="hi"))
    contact_id = store.create_contact(ContactMessage(name="A", email="a@x.com", message="hello"))
    store.close()
"""

import json
from collections.abc import Iterable
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.db import DuplicateKeyError, create_store_engine, now_iso
from directory.models import AdminResponse, ContactMessage, ContactStatus, Profile

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_profiles = Table(
    "profiles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, unique=True),
    Column("bio", String(500), nullable=False, server_default=""),
    Column("location", String(100), nullable=False, server_default=""),
    Column("country", String(100), nullable=False, server_default=""),
    Column("phone_number", String(20), nullable=False, server_default=""),
    Column("profile_image", String(500), nullable=False, server_default=""),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

_contacts = Table(
    "contact_messages",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False),
    Column("phone", String(20)),
    Column("subject", String(50), nullable=False, server_default=""),
    Column("message", Text, nullable=False),
    Column("status", String(20), nullable=False, server_default=ContactStatus.NEW.value),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("admin_response", Text),  # JSON object, NULL until replied
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)


class DirectoryStore:
    """Repository for Profile and ContactMessage records."""

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def create_profile(self, profile: Profile) -> int:
        """Insert a profile; DuplicateKeyError if the account already has one."""
        now = now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _profiles.insert().values(
                        user_id=profile.user_id,
                        bio=profile.bio,
                        location=profile.location,
                        country=profile.country,
                        phone_number=profile.phone_number,
                        profile_image=profile.profile_image,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateKeyError(f"profile for user {profile.user_id}") from exc
        profile.id = result.inserted_primary_key[0]
        profile.created_at = profile.updated_at = now
        return profile.id

    def get_profile(self, user_id: int) -> Optional[Profile]:
        with self.engine.connect() as conn:
            row = conn.execute(_profiles.select().where(_profiles.c.user_id == user_id)).fetchone()
        return _row_to_profile(row) if row is not None else None

    def save_profile(self, profile: Profile) -> bool:
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _profiles.update()
                .where(_profiles.c.user_id == profile.user_id)
                .values(
                    bio=profile.bio,
                    location=profile.location,
                    country=profile.country,
                    phone_number=profile.phone_number,
                    profile_image=profile.profile_image,
                    updated_at=now,
                )
            )
            conn.commit()
        profile.updated_at = now
        return result.rowcount > 0

    def delete_profile(self, user_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_profiles.delete().where(_profiles.c.user_id == user_id))
            conn.commit()
        return result.rowcount > 0

    def delete_profiles(self, user_ids: Iterable[int]) -> int:
        ids = list(user_ids)
        with self.engine.connect() as conn:
            result = conn.execute(_profiles.delete().where(_profiles.c.user_id.in_(ids)))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Contact messages
    # ------------------------------------------------------------------

    def create_contact(self, contact: ContactMessage) -> int:
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _contacts.insert().values(
                    name=contact.name,
                    email=contact.email,
                    phone=contact.phone,
                    subject=contact.subject,
                    message=contact.message,
                    status=ContactStatus(contact.status).value,
                    ip_address=contact.ip_address,
                    user_agent=contact.user_agent,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        contact.id = result.inserted_primary_key[0]
        contact.created_at = contact.updated_at = now
        return contact.id

    def get_contact(self, contact_id: int) -> Optional[ContactMessage]:
        with self.engine.connect() as conn:
            row = conn.execute(_contacts.select().where(_contacts.c.id == contact_id)).fetchone()
        return _row_to_contact(row) if row is not None else None

    def list_contacts(
        self,
        status: Optional[ContactStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> list[ContactMessage]:
        """Newest first, optionally filtered by status."""
        stmt = _contacts.select()
        if status is not None:
            stmt = stmt.where(_contacts.c.status == ContactStatus(status).value)
        stmt = (
            stmt.order_by(_contacts.c.created_at.desc(), _contacts.c.id.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_contact(r) for r in rows]

    def count_contacts(self, status: Optional[ContactStatus] = None) -> int:
        stmt = select(func.count()).select_from(_contacts)
        if status is not None:
            stmt = stmt.where(_contacts.c.status == ContactStatus(status).value)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def update_contact_status(self, contact_id: int, status: ContactStatus) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _contacts.update()
                .where(_contacts.c.id == contact_id)
                .values(status=ContactStatus(status).value, updated_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def record_reply(self, contact_id: int, response: AdminResponse) -> bool:
        """Store a delivered admin reply and mark the message replied."""
        payload = {
            "message": response.message,
            "admin_name": response.admin_name,
            "admin_email": response.admin_email,
            "responded_at": response.responded_at,
        }
        with self.engine.connect() as conn:
            result = conn.execute(
                _contacts.update()
                .where(_contacts.c.id == contact_id)
                .values(
                    admin_response=json.dumps(payload),
                    status=ContactStatus.REPLIED.value,
                    updated_at=now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def delete_contact(self, contact_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_contacts.delete().where(_contacts.c.id == contact_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_profile(row) -> Profile:
    return Profile(
        id=row.id,
        user_id=row.user_id,
        bio=row.bio or "",
        location=row.location or "",
        country=row.country or "",
        phone_number=row.phone_number or "",
        profile_image=row.profile_image or "",
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_contact(row) -> ContactMessage:
    response = None
    if row.admin_response:
        response = AdminResponse(**json.loads(row.admin_response))
    return ContactMessage(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        subject=row.subject or "",
        message=row.message,
        status=ContactStatus(row.status),
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        admin_response=response,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
