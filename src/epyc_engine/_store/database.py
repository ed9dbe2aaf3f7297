# Area: Store
"""
epyc_engine._store.database — Database Initialization
=====================================================

SQLite connection management, schema initialization and the
transaction boundary every engine operation runs inside.

Connections run in autocommit mode; ``Database.transaction()`` opens an
explicit ``BEGIN IMMEDIATE`` so the write lock is taken before the
first read. Two concurrent operations on the same turn are therefore
serialized, and each one sees the other's committed result.
"""

import sqlite3
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger("epyc_engine.store.database")

# Path to schema file
SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# Seconds a writer waits for the lock before sqlite raises "database is locked"
BUSY_TIMEOUT = 30.0


def get_connection(db_path: str = "epyc.db") -> sqlite3.Connection:
    """
    Get a database connection.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        Autocommit connection with row factory and foreign keys enabled
    """
    conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database(db_path: str = "epyc.db") -> None:
    """
    Initialize the database with schema.

    Args:
        db_path: Path to the SQLite database file
    """
    conn = get_connection(db_path)
    try:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
            schema = f.read()
        conn.executescript(schema)
        logger.info("Database initialized at %s", db_path)
    finally:
        conn.close()


class Database:
    """Owns the database path and hands out connections and transactions."""

    def __init__(self, db_path: str = "epyc.db"):
        self.db_path = db_path

    def initialize(self) -> None:
        init_database(self.db_path)

    def connect(self) -> sqlite3.Connection:
        return get_connection(self.db_path)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block inside ``BEGIN IMMEDIATE`` ... ``COMMIT``.

        Any exception rolls the transaction back and propagates.
        """
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()


class BaseRepository:
    """
    Base class for database repositories.

    Every helper accepts an optional connection. With one, the statement
    joins the caller's transaction; without one, a short-lived autocommit
    connection is used.
    """

    def __init__(self, db: Database):
        """
        Initialize repository.

        Args:
            db: Database the repository reads and writes
        """
        self.db = db

    @contextmanager
    def _conn(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        own = self.db.connect()
        try:
            yield own
        finally:
            own.close()

    def _execute(
        self,
        query: str,
        params: tuple = (),
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """
        Execute a write statement.

        Returns:
            Number of rows changed
        """
        with self._conn(conn) as c:
            cursor = c.execute(query, params)
            return cursor.rowcount

    def _fetch_all(
        self,
        query: str,
        params: tuple = (),
        conn: Optional[sqlite3.Connection] = None,
    ) -> list:
        with self._conn(conn) as c:
            return [dict(row) for row in c.execute(query, params).fetchall()]

    def _fetch_one(
        self,
        query: str,
        params: tuple = (),
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[dict]:
        """Execute query and return single result."""
        with self._conn(conn) as c:
            row = c.execute(query, params).fetchone()
            return dict(row) if row is not None else None
