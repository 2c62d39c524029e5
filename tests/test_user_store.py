"""Unit tests for auth/store.py -- UserStore persistence and queries.

Covers:
- create/get round trip, email lower-casing, case-insensitive lookup
- UNIQUE email raises DuplicateKeyError on insert and on email change
- token lookups honour email/token/id match and stored expiry
- list_users filtering, search, sorting and paging
- statistics, registration_trends and delete_users
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.models import Role, UserAccount
from auth.store import DuplicateKeyError, UserQuery, UserStore
from core.db import format_timestamp
from conftest import make_user


def _iso(delta: timedelta) -> str:
    return format_timestamp(datetime.now(timezone.utc) + delta)


class TestCreateAndLookup:
    def test_create_assigns_id_and_timestamps(self, user_store: UserStore) -> None:
        account = make_user(user_store, email="Mixed.Case@Example.COM")
        assert account.id is not None
        assert account.created_at and account.updated_at
        assert account.email == "mixed.case@example.com"

    def test_lookup_by_email_is_case_insensitive(self, user_store: UserStore) -> None:
        make_user(user_store, email="alice@example.com")
        found = user_store.get_by_email("  ALICE@example.com ")
        assert found is not None
        assert found.email == "alice@example.com"

    def test_get_by_id_missing_returns_none(self, user_store: UserStore) -> None:
        assert user_store.get_by_id(9999) is None

    def test_role_and_flags_round_trip(self, user_store: UserStore) -> None:
        account = make_user(user_store, role=Role.ADMIN, verified=False)
        loaded = user_store.get_by_id(account.id)
        assert loaded.role is Role.ADMIN
        assert loaded.is_email_verified is False


class TestUniqueness:
    def test_duplicate_email_raises(self, user_store: UserStore) -> None:
        make_user(user_store, email="dup@example.com")
        with pytest.raises(DuplicateKeyError):
            make_user(user_store, email="DUP@example.com")

    def test_email_change_into_existing_raises(self, user_store: UserStore) -> None:
        make_user(user_store, email="taken@example.com")
        other = make_user(user_store, email="other@example.com")
        other.email = "taken@example.com"
        with pytest.raises(DuplicateKeyError):
            user_store.save(other)

    def test_save_missing_account_returns_false(self, user_store: UserStore) -> None:
        ghost = UserAccount(email="ghost@example.com", full_name="Ghost", password_hash="x", id=424242)
        assert user_store.save(ghost) is False


class TestTokenLookups:
    def _pending(self, store: UserStore, expires: str) -> UserAccount:
        account = make_user(store, email="pending@example.com", verified=False)
        account.email_verification_token = "a" * 64
        account.email_verification_expires = expires
        store.save(account)
        return account

    def test_verification_token_matches(self, user_store: UserStore) -> None:
        account = self._pending(user_store, _iso(timedelta(hours=1)))
        now = _iso(timedelta())
        assert user_store.find_by_verification_token("pending@example.com", "a" * 64, now).id == account.id

    def test_verification_token_wrong_email(self, user_store: UserStore) -> None:
        self._pending(user_store, _iso(timedelta(hours=1)))
        assert user_store.find_by_verification_token("other@example.com", "a" * 64, _iso(timedelta())) is None

    def test_verification_token_expired(self, user_store: UserStore) -> None:
        self._pending(user_store, _iso(timedelta(seconds=-1)))
        assert user_store.find_by_verification_token("pending@example.com", "a" * 64, _iso(timedelta())) is None

    def test_reset_token_requires_matching_user_and_expiry(self, user_store: UserStore) -> None:
        account = make_user(user_store)
        account.password_reset_token = "reset-token"
        account.password_reset_expires = _iso(timedelta(minutes=30))
        user_store.save(account)
        now = _iso(timedelta())
        assert user_store.find_by_reset_token(account.id, "reset-token", now) is not None
        assert user_store.find_by_reset_token(account.id + 1, "reset-token", now) is None
        assert user_store.find_by_reset_token(account.id, "other", now) is None
        later = _iso(timedelta(hours=1))
        assert user_store.find_by_reset_token(account.id, "reset-token", later) is None


class TestListing:
    @pytest.fixture
    def populated(self, user_store: UserStore) -> UserStore:
        make_user(user_store, email="ann@example.com", full_name="Ann Admin", role=Role.ADMIN)
        make_user(user_store, email="bob@example.com", full_name="Bob Builder")
        make_user(user_store, email="cat@example.com", full_name="Cat Stevens", verified=False)
        make_user(user_store, email="dan@sample.org", full_name="Dan 100% Real")
        return user_store

    def test_filter_by_role(self, populated: UserStore) -> None:
        admins = populated.list_users(UserQuery(role=Role.ADMIN))
        assert [u.email for u in admins] == ["ann@example.com"]

    def test_filter_by_verification(self, populated: UserStore) -> None:
        unverified = populated.list_users(UserQuery(is_email_verified=False))
        assert [u.email for u in unverified] == ["cat@example.com"]

    def test_search_matches_name_or_email_case_insensitively(self, populated: UserStore) -> None:
        by_name = populated.list_users(UserQuery(search="BUILDER"))
        by_email = populated.list_users(UserQuery(search="sample.org"))
        assert [u.email for u in by_name] == ["bob@example.com"]
        assert [u.email for u in by_email] == ["dan@sample.org"]

    def test_search_treats_percent_literally(self, populated: UserStore) -> None:
        assert [u.email for u in populated.list_users(UserQuery(search="100%"))] == ["dan@sample.org"]
        assert populated.list_users(UserQuery(search="%")) == populated.list_users(UserQuery(search="100%"))

    def test_sort_and_page(self, populated: UserStore) -> None:
        query = UserQuery(sort_by="email", descending=False, page=2, limit=2)
        assert [u.email for u in populated.list_users(query)] == ["cat@example.com", "dan@sample.org"]
        assert populated.count_users(query) == 4

    def test_statistics(self, populated: UserStore) -> None:
        stats = populated.statistics()
        assert stats == {"total": 4, "verified": 3, "unverified": 1, "users": 3, "admins": 1}

    def test_statistics_respect_filter(self, populated: UserStore) -> None:
        stats = populated.statistics(UserQuery(search="example.com"))
        assert stats["total"] == 3

    def test_statistics_on_empty_store(self, user_store: UserStore) -> None:
        assert user_store.statistics()["total"] == 0
        assert user_store.has_users() is False

    def test_registration_trends_groups_by_day(self, populated: UserStore) -> None:
        since = datetime.now(timezone.utc) - timedelta(days=30)
        trends = populated.registration_trends(since)
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        assert trends == [(today, 4)]

    def test_delete_users_returns_existing_only(self, populated: UserStore) -> None:
        bob = populated.get_by_email("bob@example.com")
        deleted = populated.delete_users([bob.id, 98765])
        assert [u.email for u in deleted] == ["bob@example.com"]
        assert populated.get_by_id(bob.id) is None
        assert populated.count_users() == 3
