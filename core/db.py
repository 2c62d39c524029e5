"""
core/db.py -- Engine construction and timestamp helpers shared by every store.

Timestamps are ISO 8601 UTC strings with fixed microsecond precision, so
lexicographic comparison in SQL matches chronological order. Expiry checks in
the stores compare these strings directly.

Layer rule: core/ is the kernel. No imports from api/, auth/ or directory/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine


class DuplicateKeyError(Exception):
    """A write violated a unique constraint."""


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as the canonical stored form (UTC, microseconds)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_iso() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str) -> Engine:
    """Build an Engine with the SQLite tweaks every store needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def ping(engine: Engine) -> bool:
    """Return True if the database answers a trivial query."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True
