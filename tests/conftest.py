"""
tests/conftest.py -- Shared test fixtures for Gatehouse tests.

This module provides:
  - RecordingTransport: mail transport that keeps messages in memory and can
    be told to fail, standing in for SMTP in every test
  - stores: isolated in-memory UserStore + DirectoryStore per test
  - service: AccountService wired to the test stores and outbox
  - client: TestClient running the real app with a patched lifespan
  - make_user(): create an account directly in a store
  - bearer(): Authorization header for an account

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. A uuid
suffix gives every test its own database.

Environment variables must be set before any auth/core import:
  DEBUG=true              -- get_settings() auto-generates signing secrets
  RATE_LIMIT_ENABLED=false -- tests log in far more often than the limit allows
  BCRYPT_ROUNDS=4         -- the minimum cost factor keeps hashing fast
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import so module-level get_settings()
# calls see the test configuration.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_state
from auth.models import Role, UserAccount
from auth.notifications import AccountNotifier
from auth.service import AccountService
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.config import get_settings
from core.mailer import FailoverMailer, MailDeliveryError, OutgoingEmail
from directory.store import DirectoryStore

DEFAULT_PASSWORD = "correct-horse-9"


# ---------------------------------------------------------------------------
# Mail
# ---------------------------------------------------------------------------


class RecordingTransport:
    """In-memory transport. Set fail=True to make every send raise."""

    def __init__(self, name: str = "recording") -> None:
        self.name = name
        self.sent: list[OutgoingEmail] = []
        self.fail = False

    def send(self, message: OutgoingEmail) -> None:
        if self.fail:
            raise MailDeliveryError(f"{self.name}: forced failure")
        self.sent.append(message)

    def to(self, address: str) -> list[OutgoingEmail]:
        return [m for m in self.sent if m.to == address]


@pytest.fixture
def outbox() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def mailer(outbox: RecordingTransport) -> FailoverMailer:
    return FailoverMailer([outbox], default_sender=get_settings().mail_from)


# ---------------------------------------------------------------------------
# Stores and services
# ---------------------------------------------------------------------------


def _memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def stores() -> Generator[tuple[UserStore, DirectoryStore], None, None]:
    """Yield (user_store, directory_store) sharing one private in-memory DB."""
    url = _memory_url("gatehouse_test")
    user_store = UserStore(url)
    directory_store = DirectoryStore(url)
    yield user_store, directory_store
    directory_store.close()
    user_store.close()


@pytest.fixture
def user_store(stores: tuple[UserStore, DirectoryStore]) -> UserStore:
    return stores[0]


@pytest.fixture
def directory_store(stores: tuple[UserStore, DirectoryStore]) -> DirectoryStore:
    return stores[1]


@pytest.fixture
def service(user_store: UserStore, mailer: FailoverMailer) -> AccountService:
    settings = get_settings()
    return AccountService(user_store, AccountNotifier(mailer, settings), settings)


def make_user(
    store: UserStore,
    email: str = "user@example.com",
    password: str = DEFAULT_PASSWORD,
    full_name: str = "Test User",
    role: Role = Role.USER,
    verified: bool = True,
) -> UserAccount:
    """Insert an account directly, bypassing signup and email."""
    account = UserAccount(
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
        is_email_verified=verified,
    )
    store.create_user(account)
    return account


def bearer(account: UserAccount) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(account.id)}"}


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, directory_store: DirectoryStore, mailer: FailoverMailer):
    """Return an async context manager that replaces the real lifespan.

    Wires the test stores and recording mailer into app.state so routes see
    isolated databases and no mail leaves the process.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app, get_settings(), user_store, directory_store, mailer)
        yield

    return test_lifespan


@pytest.fixture
def client(
    stores: tuple[UserStore, DirectoryStore],
    mailer: FailoverMailer,
) -> Generator[TestClient, None, None]:
    """TestClient against the real app, backed by this test's stores.

    raise_server_exceptions=False so unexpected errors surface as the 500
    envelope the catch-all handler produces, the same as in production.
    """
    user_store, directory_store = stores
    app.router.lifespan_context = _patch_lifespan(user_store, directory_store, mailer)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def admin(user_store: UserStore) -> UserAccount:
    return make_user(user_store, email="admin@example.com", full_name="Site Admin", role=Role.ADMIN)


@pytest.fixture
def member(user_store: UserStore) -> UserAccount:
    return make_user(user_store, email="member@example.com", full_name="Regular Member")
