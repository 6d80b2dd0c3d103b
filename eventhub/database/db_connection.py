"""
PostgreSQL connection helper.
Provides the Database object handed to every service.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
from psycopg2.extras import DictCursor
from psycopg2.pool import ThreadedConnectionPool


class Database:
    """
    Owns a pool of psycopg2 connections with dictionary-based row access.

    Lifecycle:
        db = Database(url)   # opens the pool
        ...                  # services borrow connections via connection()
        db.close()           # releases every connection at shutdown
    """

    def __init__(self, dsn: str, min_conn: int = 1, max_conn: int = 10):
        if not dsn:
            raise RuntimeError("DATABASE_URL is not set. Please set the environment variable.")
        try:
            self._pool: Optional[ThreadedConnectionPool] = ThreadedConnectionPool(
                min_conn, max_conn, dsn, cursor_factory=DictCursor
            )
        except psycopg2.Error:
            logging.exception("Error connecting to database")
            raise
        logging.info(f"Database pool ready (min={min_conn}, max={max_conn})")

    @contextmanager
    def connection(self) -> Iterator["psycopg2.extensions.connection"]:
        """
        Borrow a connection for one unit of work.

        The transaction commits when the block exits normally and rolls back
        when it raises; the connection always goes back to the pool.

        Usage:
            with db.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(...)
        """
        if self._pool is None:
            raise RuntimeError("Database has been closed")

        conn = self._pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logging.info("Database pool closed")
