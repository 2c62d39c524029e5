#!/usr/bin/env python3
"""
Gatehouse -- account administration from the command line.

Usage:
  python main.py create-admin --email admin@example.com --name "Site Admin"
  python main.py create-admin --email admin@example.com --name "Site Admin" --password '...'

create-admin writes a verified admin account straight into DATABASE_URL.
It is the bootstrap path for a fresh install: every admin-only endpoint needs
an admin to exist first. When --password is omitted the password is read from
the terminal without echo.

Environment variables: the same as the API (see core/config.py). DATABASE_URL
selects the database; DEBUG=true allows running without signing secrets.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.models import Role
from auth.notifications import AccountNotifier
from auth.service import AccountService
from auth.store import UserStore
from auth.tokens import PASSWORD_MAX_BYTES
from core.config import get_settings
from core.errors import ServiceError
from core.mailer import build_mailer

_MIN_PASSWORD = 8


def _read_password() -> Optional[str]:
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def create_admin(email: str, full_name: str, password: str, db_url: Optional[str] = None) -> int:
    """Create a verified admin account and return its id.

    Raises ServiceError (DuplicateAccountError) if the email is taken.
    """
    settings = get_settings()
    store = UserStore(db_url or settings.database_url)
    try:
        service = AccountService(store, AccountNotifier(build_mailer(settings), settings), settings)
        account = service.create_account(email, password, full_name, role=Role.ADMIN, is_email_verified=True)
        return account.id
    finally:
        store.close()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gatehouse",
        description="Gatehouse account administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --email admin@example.com --name "Site Admin"
""",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    admin = sub.add_parser("create-admin", help="Create a verified admin account")
    admin.add_argument("--email", required=True, help="Admin email address (login name)")
    admin.add_argument("--name", required=True, metavar="FULL_NAME", help="Display name, 2-50 characters")
    admin.add_argument(
        "--password",
        default=None,
        help="Password (at least 8 characters). Prompted for when omitted.",
    )
    admin.add_argument("--database-url", default=None, help="Override DATABASE_URL for this run")

    args = parser.parse_args(argv)

    if args.command != "create-admin":
        parser.print_help()
        return 1

    name = args.name.strip()
    if not 2 <= len(name) <= 50:
        print("  [!] Full name must be between 2 and 50 characters.")
        return 1

    password = args.password if args.password is not None else _read_password()
    if password is None:
        return 1
    if len(password) < _MIN_PASSWORD:
        print(f"  [!] Password must be at least {_MIN_PASSWORD} characters long.")
        return 1
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        print(f"  [!] Password must be at most {PASSWORD_MAX_BYTES} bytes long.")
        return 1

    try:
        uid = create_admin(args.email, name, password, db_url=args.database_url)
    except ServiceError as exc:
        print(f"  [!] {exc.message}")
        return 1

    print(f"Admin account created (id={uid}, email={args.email.strip().lower()}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
