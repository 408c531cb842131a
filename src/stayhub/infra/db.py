"""Database access layer using psycopg2.

Provides:
- get_conn(): Open a connection from DATABASE_URL (DB_PASSWORD fallback)
- Database: explicitly constructed handle owned by the app factory
- txn(): Context manager for short, safe transactions
"""

import os
from contextlib import contextmanager
from typing import Iterator
from urllib.parse import urlparse

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(urlparse(dsn).password)
    return any(part.startswith("password=") for part in dsn.split())


def get_conn(dsn: str | None = None) -> PgConnection:
    """Open a new database connection.

    Args:
        dsn: Connection string. Defaults to DATABASE_URL.

    Returns:
        psycopg2 connection object.

    Raises:
        RuntimeError: If no DSN is given and DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = dsn or os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    db_password = os.environ.get("DB_PASSWORD")
    if db_password and not _dsn_has_password(dsn):
        return psycopg2.connect(dsn, password=db_password)
    return psycopg2.connect(dsn)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception.

    Example:
        with txn() as cur:
            cur.execute("DELETE FROM bookings WHERE id = %s", (booking_id,))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


class Database:
    """Process-wide database handle.

    Built once by the application factory and shared by reference; every
    transaction opens its own short-lived connection.
    """

    def __init__(self, dsn: str | None = None) -> None:
        self._dsn = dsn

    @classmethod
    def from_env(cls) -> "Database":
        return cls(os.environ.get("DATABASE_URL"))

    def connect(self) -> PgConnection:
        return get_conn(self._dsn)

    @contextmanager
    def txn(self) -> Iterator[PgCursor]:
        conn = self.connect()
        try:
            with txn(conn) as cur:
                yield cur
        finally:
            conn.close()
