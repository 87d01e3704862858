"""
Postgres access over a psycopg2 ThreadedConnectionPool.

One pool per database URL, shared by every PostgresClient built for it.
Rows come back as plain dicts; each service owns the mapping from row to
model. Any psycopg2 failure surfaces as StoreError after a rollback.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator

import psycopg2
import psycopg2.extras
import psycopg2.pool

from clients.errors import StoreError

logger = logging.getLogger(__name__)

Params = tuple | dict | None

# UUID and JSONB adapters are process-wide in psycopg2
_adapters_registered = False


def _register_adapters() -> None:
    global _adapters_registered
    if _adapters_registered:
        return
    psycopg2.extras.register_uuid()
    psycopg2.extras.register_default_jsonb(globally=True)
    _adapters_registered = True


class PostgresClient:
    """
    Thin query helper for the marketplace tables.

    Usage:
        db = PostgresClient(database_url)
        roots = db.execute("SELECT * FROM categories WHERE parent_id IS NULL")
        user = db.execute_single("SELECT * FROM users WHERE phone_number = %s", (phone,))
    """

    _connection_pools: dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(
        self,
        database_url: str,
        min_connections: int = 1,
        max_connections: int = 10,
        connect_timeout: int = 10,
    ):
        self._database_url = database_url
        self._pool_args = {
            "minconn": min_connections,
            "maxconn": max_connections,
            "connect_timeout": connect_timeout,
        }
        self._pool()

    def _pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        with self._pools_lock:
            pool = self._connection_pools.get(self._database_url)
            if pool is not None:
                return pool

            try:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    dsn=self._database_url, **self._pool_args
                )
            except psycopg2.Error as e:
                logger.error(f"Could not create connection pool: {e}")
                raise StoreError(f"Could not connect to database: {e}") from e

            _register_adapters()
            self._connection_pools[self._database_url] = pool
            logger.info(f"Connection pool created (max {self._pool_args['maxconn']})")
            return pool

    @contextmanager
    def _cursor(self, dict_rows: bool = True) -> Iterator[Any]:
        """Cursor on a pooled connection. Commits on success, rolls back on failure."""
        pool = self._pool()
        conn = pool.getconn()
        factory = psycopg2.extras.RealDictCursor if dict_rows else None
        try:
            with conn.cursor(cursor_factory=factory) as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Query failed: {e}")
            raise StoreError(f"Database operation failed: {e}") from e
        finally:
            pool.putconn(conn)

    def execute(self, query: str, params: Params = None) -> list[dict[str, Any]]:
        """Run a query; rows as dicts, or [] for statements that return none."""
        with self._cursor() as cur:
            cur.execute(query, params)
            if cur.description is None:
                return []
            return [dict(row) for row in cur.fetchall()]

    def execute_single(self, query: str, params: Params = None) -> dict[str, Any] | None:
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def execute_returning(self, query: str, params: Params = None) -> list[dict[str, Any]]:
        """INSERT/UPDATE/DELETE ... RETURNING. May be empty when nothing matched."""
        with self._cursor() as cur:
            cur.execute(query, params)
            return [dict(row) for row in cur.fetchall()]

    def execute_scalar(self, query: str, params: Params = None) -> Any:
        """First column of the first row, or None."""
        with self._cursor(dict_rows=False) as cur:
            cur.execute(query, params)
            row = cur.fetchone()
            return row[0] if row else None

    def ping(self) -> bool:
        try:
            return self.execute_scalar("SELECT 1") == 1
        except StoreError:
            return False

    def close(self) -> None:
        with self._pools_lock:
            pool = self._connection_pools.pop(self._database_url, None)
        if pool is not None:
            pool.closeall()
            logger.info("Connection pool closed")
