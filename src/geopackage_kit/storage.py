"""
Thin layer over sqlite3.

Connections are opened in autocommit mode; the library issues BEGIN, COMMIT
and ROLLBACK itself so schema statements take part in transactions too.
"""

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path

from .exceptions import StorageEngineError

LOGGER = logging.getLogger(__name__)


def connect(path: str | Path) -> sqlite3.Connection:
    """Open a connection with explicit transaction control"""
    try:
        conn = sqlite3.connect(str(path), isolation_level=None)
    except sqlite3.Error as e:
        raise StorageEngineError(f"Cannot open {path}: {e}") from e
    conn.row_factory = sqlite3.Row
    return conn


@contextlib.contextmanager
def storage_errors() -> Iterator[None]:
    """Re-raise sqlite3 errors as StorageEngineError"""
    try:
        yield
    except sqlite3.Error as e:
        raise StorageEngineError(str(e)) from e


@contextlib.contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run the block in a single transaction.

    Commits on success and rolls back on any exception. Only one transaction
    may be open on a connection at a time.

    Raises:
        StorageEngineError: If a transaction is already open, or SQLite fails
    """
    if conn.in_transaction:
        raise StorageEngineError("A transaction is already open on this connection")

    with storage_errors():
        conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        rollback_after_error(conn)
        raise
    with storage_errors():
        conn.execute("COMMIT")


def begin(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        raise StorageEngineError("A transaction is already open on this connection")
    with storage_errors():
        conn.execute("BEGIN")


def commit(conn: sqlite3.Connection) -> None:
    with storage_errors():
        conn.execute("COMMIT")


def rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        with storage_errors():
            conn.execute("ROLLBACK")


def rollback_after_error(conn: sqlite3.Connection) -> None:
    """
    Roll back while another exception is propagating.

    A failing ROLLBACK is logged and not raised, so the caller can re-raise
    the exception that caused it.
    """
    try:
        rollback(conn)
    except StorageEngineError:
        LOGGER.exception("Rollback failed")


def execute(conn: sqlite3.Connection, sql: str, params: tuple = ()) -> sqlite3.Cursor:
    LOGGER.debug("SQL: %s", sql)
    with storage_errors():
        return conn.execute(sql, params)


def pragma(conn: sqlite3.Connection, statement: str) -> object:
    """Run a PRAGMA and return the first column of its first row, if any"""
    row = execute(conn, f"PRAGMA {statement}").fetchone()
    return row[0] if row is not None else None
