"""
tests/test_cli.py -- Tests for the create-admin command in main.py.

Each test points --database-url at a throwaway SQLite file under tmp_path
and inspects the result through UserStore.
"""

from __future__ import annotations

import pytest

import main
from auth.models import Role
from auth.store import UserStore
from auth.tokens import verify_password


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _run(db_url: str, *extra: str) -> int:
    return main.main(["create-admin", "--database-url", db_url, *extra])


def test_create_admin_writes_verified_admin(db_url, capsys):
    code = _run(db_url, "--email", "Root@Example.com", "--name", "Root Admin", "--password", "long-enough-1")
    assert code == 0
    assert "email=root@example.com" in capsys.readouterr().out
    store = UserStore(db_url)
    try:
        account = store.get_by_email("root@example.com")
        assert account.role is Role.ADMIN
        assert account.is_email_verified is True
        assert verify_password("long-enough-1", account.password_hash)
    finally:
        store.close()


def test_duplicate_email_fails(db_url, capsys):
    args = ("--email", "root@example.com", "--name", "Root Admin", "--password", "long-enough-1")
    assert _run(db_url, *args) == 0
    assert _run(db_url, *args) == 1
    assert "User with this email already exists" in capsys.readouterr().out


def test_short_password_rejected(db_url, capsys):
    assert _run(db_url, "--email", "root@example.com", "--name", "Root Admin", "--password", "short") == 1
    assert "at least 8 characters" in capsys.readouterr().out


@pytest.mark.parametrize("password", ["a" * 100, "\u00e9" * 40], ids=["ascii", "multibyte"])
def test_password_over_72_bytes_rejected(db_url, capsys, password):
    assert _run(db_url, "--email", "root@example.com", "--name", "Root Admin", "--password", password) == 1
    assert "at most 72 bytes" in capsys.readouterr().out


def test_short_name_rejected(db_url):
    assert _run(db_url, "--email", "root@example.com", "--name", "R", "--password", "long-enough-1") == 1


def test_prompted_password_must_match(db_url, monkeypatch, capsys):
    answers = iter(["long-enough-1", "different-1"])
    monkeypatch.setattr(main.getpass, "getpass", lambda _prompt: next(answers))
    assert _run(db_url, "--email", "root@example.com", "--name", "Root Admin") == 1
    assert "Passwords do not match" in capsys.readouterr().out


def test_prompted_password_is_used(db_url, monkeypatch):
    monkeypatch.setattr(main.getpass, "getpass", lambda _prompt: "long-enough-1")
    assert _run(db_url, "--email", "root@example.com", "--name", "Root Admin") == 0


def test_no_command_prints_help(capsys):
    assert main.main([]) == 1
    assert "create-admin" in capsys.readouterr().out
