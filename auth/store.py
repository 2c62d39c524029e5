"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is enforced by a UNIQUE constraint, not by a
  check-then-insert in code, so two concurrent signups for the same address
  cannot both succeed. The IntegrityError is re-raised as DuplicateKeyError;
  callers translate it into the user-facing "account exists" error.

  password_hash is stored and returned to the service layer only. Nothing in
  this module logs account fields.

Timestamps use the core.db canonical form, so the token expiry checks can
compare them as strings in SQL.

Layer rule: no imports from api/ or directory/.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, case, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Role, UserAccount
from core.db import DuplicateKeyError, create_store_engine, format_timestamp
from core.db import now_iso as _now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # always lower-case
    Column("password_hash", Text, nullable=False),
    Column("full_name", String(100), nullable=False),
    Column("role", String(20), nullable=False, server_default=Role.USER.value),
    Column("is_email_verified", Integer, nullable=False, server_default="0"),
    Column("email_verification_token", String(128)),
    Column("email_verification_expires", String(40)),
    Column("password_reset_token", Text),
    Column("password_reset_expires", String(40)),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

_SORTABLE = {
    "created_at": _users.c.created_at,
    "updated_at": _users.c.updated_at,
    "full_name": _users.c.full_name,
    "email": _users.c.email,
    "role": _users.c.role,
}


@dataclass
class UserQuery:
    """Filter, sort and page parameters for list/count/statistics queries."""

    role: Role | None = None
    is_email_verified: bool | None = None
    search: str | None = None
    sort_by: str = "created_at"
    descending: bool = True
    page: int = 1
    limit: int = 10


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for UserAccount records.

    Usage:
        store = UserStore("sqlite:///gatehouse.db")
        uid = store.create_user(UserAccount(email="a@x.com", full_name="A", password_hash=hash_password("...")))
        account = store.get_by_email("A@X.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Single-record access
    # ------------------------------------------------------------------

    def create_user(self, account: UserAccount) -> int:
        """Insert a new account and return its id.

        Raises DuplicateKeyError if the email is already registered. The
        account's id and timestamps are filled in on success.
        """
        now = _now_iso()
        account.email = normalize_email(account.email)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        email=account.email,
                        password_hash=account.password_hash,
                        full_name=account.full_name,
                        role=Role(account.role).value,
                        is_email_verified=1 if account.is_email_verified else 0,
                        email_verification_token=account.email_verification_token,
                        email_verification_expires=account.email_verification_expires,
                        password_reset_token=account.password_reset_token,
                        password_reset_expires=account.password_reset_expires,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateKeyError(account.email) from exc
        account.id = result.inserted_primary_key[0]
        account.created_at = account.updated_at = now
        return account.id

    def get_by_id(self, user_id: int) -> UserAccount | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> UserAccount | None:
        """Case-insensitive lookup; the stored email is always lower-case."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def save(self, account: UserAccount) -> bool:
        """Persist every mutable field of an existing account.

        Returns False if the id no longer exists. Raises DuplicateKeyError if
        an email change collides with another account.
        """
        now = _now_iso()
        account.email = normalize_email(account.email)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.update()
                    .where(_users.c.id == account.id)
                    .values(
                        email=account.email,
                        password_hash=account.password_hash,
                        full_name=account.full_name,
                        role=Role(account.role).value,
                        is_email_verified=1 if account.is_email_verified else 0,
                        email_verification_token=account.email_verification_token,
                        email_verification_expires=account.email_verification_expires,
                        password_reset_token=account.password_reset_token,
                        password_reset_expires=account.password_reset_expires,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateKeyError(account.email) from exc
        account.updated_at = now
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def delete_users(self, user_ids: Iterable[int]) -> list[UserAccount]:
        """Delete several accounts and return the ones that existed."""
        ids = list(user_ids)
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.id.in_(ids))).fetchall()
            conn.execute(_users.delete().where(_users.c.id.in_(ids)))
            conn.commit()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Token lookups
    # ------------------------------------------------------------------

    def find_by_verification_token(self, email: str, token: str, now: str) -> UserAccount | None:
        """Return the account whose pending verification matches and has not expired.

        A wrong token, wrong email, consumed token or past expiry all look the
        same to the caller: None.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.email == normalize_email(email))
                    & (_users.c.email_verification_token == token)
                    & (_users.c.email_verification_expires > now)
                )
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_reset_token(self, user_id: int, token: str, now: str) -> UserAccount | None:
        """Return the account if token is its stored, unexpired reset token."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.id == user_id)
                    & (_users.c.password_reset_token == token)
                    & (_users.c.password_reset_expires > now)
                )
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Listing and aggregates (admin)
    # ------------------------------------------------------------------

    def list_users(self, query: UserQuery) -> list[UserAccount]:
        column = _SORTABLE.get(query.sort_by, _users.c.created_at)
        order = column.desc() if query.descending else column.asc()
        offset = (max(query.page, 1) - 1) * query.limit
        stmt = _users.select().where(*_filters(query)).order_by(order, _users.c.id).offset(offset).limit(query.limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self, query: UserQuery | None = None) -> int:
        stmt = select(func.count()).select_from(_users)
        if query is not None:
            stmt = stmt.where(*_filters(query))
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def has_users(self) -> bool:
        return self.count_users() > 0

    def statistics(self, query: UserQuery | None = None) -> dict[str, int]:
        """Counts grouped by verification state and role over the filter."""
        verified = _users.c.is_email_verified == 1
        stmt = select(
            func.count().label("total"),
            func.coalesce(func.sum(case((verified, 1), else_=0)), 0).label("verified"),
            func.coalesce(func.sum(case((_users.c.role == Role.USER.value, 1), else_=0)), 0).label("users"),
            func.coalesce(func.sum(case((_users.c.role == Role.ADMIN.value, 1), else_=0)), 0).label("admins"),
        ).select_from(_users)
        if query is not None:
            stmt = stmt.where(*_filters(query))
        with self.engine.connect() as conn:
            row = conn.execute(stmt).one()
        return {
            "total": int(row.total),
            "verified": int(row.verified),
            "unverified": int(row.total) - int(row.verified),
            "users": int(row.users),
            "admins": int(row.admins),
        }

    def registration_trends(self, since: datetime) -> list[tuple[str, int]]:
        """Return (YYYY-MM-DD, count) pairs for accounts created since the given moment."""
        day = func.substr(_users.c.created_at, 1, 10).label("day")
        stmt = (
            select(day, func.count().label("count"))
            .where(_users.c.created_at >= format_timestamp(since))
            .group_by(day)
            .order_by(day)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [(r.day, int(r.count)) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Query building and row mapping
# ---------------------------------------------------------------------------


def _filters(query: UserQuery) -> list:
    conditions = []
    if query.role is not None:
        conditions.append(_users.c.role == Role(query.role).value)
    if query.is_email_verified is not None:
        conditions.append(_users.c.is_email_verified == (1 if query.is_email_verified else 0))
    if query.search:
        term = query.search.strip().lower()
        conditions.append(
            or_(
                func.lower(_users.c.full_name).contains(term, autoescape=True),
                _users.c.email.contains(term, autoescape=True),
            )
        )
    return conditions


def _row_to_user(row) -> UserAccount:
    return UserAccount(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        full_name=row.full_name,
        role=Role(row.role),
        is_email_verified=bool(row.is_email_verified),
        email_verification_token=row.email_verification_token,
        email_verification_expires=row.email_verification_expires,
        password_reset_token=row.password_reset_token,
        password_reset_expires=row.password_reset_expires,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
