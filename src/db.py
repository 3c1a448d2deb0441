"""Database handle for faq-assist.

Supports two backends:
  - PostgreSQL (production), when a DATABASE_URL is configured
  - DuckDB (local development, tests), file fallback otherwise

One Database is created at startup, opened once, handed to the store, and
closed on shutdown. Callers write %s placeholders; they are converted to ?
for DuckDB.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager

import duckdb
import psycopg2
import psycopg2.pool

from src.faq.errors import StoreError

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_SECS = 5.0

_DRIVER_ERRORS = (duckdb.Error, psycopg2.Error)


class _PooledConnection:
    """Wrapper around a psycopg2 connection that returns it to the pool on close.

    Instead of destroying the connection, .close() rolls back any uncommitted
    transaction and returns the connection to the pool via putconn().
    """

    def __init__(self, conn, pool):
        self._conn = conn
        self._pool = pool

    def close(self):
        """Roll back uncommitted work and return connection to pool."""
        if self._conn is not None:
            try:
                self._conn.rollback()
            except psycopg2.Error:
                logger.debug("Rollback before putconn failed", exc_info=True)
            self._pool.putconn(self._conn)
            self._conn = None

    def __getattr__(self, name):
        return getattr(self._conn, name)


class Transaction:
    """Statement runner bound to one connection inside Database.transaction()."""

    def __init__(self, conn, backend: str):
        self._conn = conn
        self.backend = backend
        self._cur = conn.cursor() if backend == "postgres" else conn

    def execute(self, sql: str, params=None) -> None:
        if self.backend == "duckdb" and params:
            sql = sql.replace("%s", "?")
        t0 = time.monotonic()
        if params:
            self._cur.execute(sql, params)
        else:
            self._cur.execute(sql)
        elapsed = time.monotonic() - t0
        if elapsed >= SLOW_QUERY_THRESHOLD_SECS:
            logger.warning("Slow query detected (%.1fs): %s", elapsed, sql[:200])

    def fetchall(self, sql: str, params=None) -> list:
        self.execute(sql, params)
        return self._cur.fetchall()

    def fetchone(self, sql: str, params=None):
        self.execute(sql, params)
        return self._cur.fetchone()


class Database:
    """Process-wide connection source with an explicit open/close lifecycle."""

    def __init__(self, url: str | None = None, duckdb_path: str | None = None,
                 pool_max: int = 20):
        self.url = url
        self.duckdb_path = duckdb_path
        self.pool_max = pool_max
        self.backend = "postgres" if url else "duckdb"
        self._pool = None
        self._duck = None
        # DuckDB is embedded and single-process: writers are serialized here.
        self._write_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            url=settings.database_url,
            duckdb_path=settings.duckdb_path,
            pool_max=settings.db_pool_max,
        )

    @property
    def is_open(self) -> bool:
        return self._pool is not None or self._duck is not None

    def open(self) -> "Database":
        """Create the Postgres pool or the DuckDB instance. Idempotent."""
        if self.is_open:
            return self
        try:
            if self.backend == "postgres":
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=self.pool_max,
                    dsn=self.url,
                    connect_timeout=10,
                )
                logger.info("PostgreSQL connection pool created (maxconn=%d)", self.pool_max)
            else:
                if not self.duckdb_path:
                    raise StoreError("no DuckDB path configured")
                directory = os.path.dirname(self.duckdb_path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                self._duck = duckdb.connect(self.duckdb_path)
                logger.info("DuckDB opened at %s", self.duckdb_path)
        except _DRIVER_ERRORS as e:
            logger.error("Database open failed: %s", e)
            raise StoreError(f"could not open database: {e}") from e
        return self

    def close(self) -> None:
        """Release the pool / DuckDB instance. Safe to call more than once."""
        if self._pool is not None:
            try:
                self._pool.closeall()
                logger.info("PostgreSQL connection pool closed")
            except psycopg2.Error as e:
                logger.warning("Error closing pool: %s", e)
            self._pool = None
        if self._duck is not None:
            try:
                self._duck.close()
                logger.info("DuckDB closed")
            except duckdb.Error as e:
                logger.warning("Error closing DuckDB: %s", e)
            self._duck = None

    def get_connection(self):
        """Get a connection. Caller is responsible for closing it.

        Postgres: a _PooledConnection with statement_timeout=30s.
        DuckDB: a cursor (independent connection) on the shared instance.
        """
        if not self.is_open:
            raise StoreError("database is not open")
        if self.backend == "postgres":
            raw_conn = self._pool.getconn()
            with raw_conn.cursor() as cur:
                cur.execute("SET statement_timeout = '30s'")
            raw_conn.commit()
            return _PooledConnection(raw_conn, self._pool)
        return self._duck.cursor()

    @contextmanager
    def transaction(self, write: bool = False):
        """Run statements in one transaction; commit on success, else roll back.

        Driver errors are re-raised as StoreError. With write=True on DuckDB
        the process-wide write lock is held for the whole transaction.
        """
        lock = self._write_lock if (write and self.backend == "duckdb") else None
        if lock is not None:
            lock.acquire()
        try:
            try:
                conn = self.get_connection()
            except _DRIVER_ERRORS as e:
                logger.error("Could not get a database connection: %s", e)
                raise StoreError(f"database unavailable: {e}") from e
            try:
                if self.backend == "duckdb":
                    conn.execute("BEGIN TRANSACTION")
                yield Transaction(conn, self.backend)
                conn.commit()
            except _DRIVER_ERRORS as e:
                _rollback(conn)
                logger.error("Database error, transaction rolled back: %s", e)
                raise StoreError(f"database error: {e}") from e
            except BaseException:
                _rollback(conn)
                raise
            finally:
                conn.close()
        finally:
            if lock is not None:
                lock.release()

    def query(self, sql: str, params=None) -> list:
        """Execute a SELECT and return all rows as a list of tuples."""
        with self.transaction() as tx:
            return tx.fetchall(sql, params)

    def query_one(self, sql: str, params=None):
        """Execute a SELECT and return the first row, or None."""
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def get_pool_stats(self) -> dict:
        """Return connection statistics for the /health endpoint."""
        if self.backend == "duckdb":
            return {"backend": "duckdb", "open": self.is_open, "path": self.duckdb_path}
        if self._pool is None:
            return {"status": "no_pool", "backend": self.backend}
        return {
            "backend": self.backend,
            "maxconn": self._pool.maxconn,
            "closed": self._pool.closed,
            "pool_size": len(self._pool._pool) if hasattr(self._pool, "_pool") else -1,
            "used_count": len(self._pool._used) if hasattr(self._pool, "_used") else -1,
        }


def _rollback(conn) -> None:
    try:
        conn.rollback()
    except _DRIVER_ERRORS:
        logger.debug("Rollback failed", exc_info=True)
