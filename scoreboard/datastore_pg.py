import logging
import os
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2.extras import RealDictCursor


logger = logging.getLogger(__name__)

_POOL: Optional[pg_pool.AbstractConnectionPool] = None

# Errors worth retrying: dropped connections, server restarts, SSL hiccups,
# and a pool momentarily out of connections
_TRANSIENT_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError, pg_pool.PoolError)


class QueryError(Exception):
    """Raised when a query still fails after the retry budget is spent."""


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except Exception:
        return default


def _connect_kwargs() -> Dict[str, Any]:
    """Common connection kwargs: connect_timeout + TCP keepalives.

    Defaults:
      - connect_timeout: 10 seconds (overridable via DB_CONNECT_TIMEOUT)
      - keepalives: enabled by default; can be disabled by DB_KEEPALIVES=0
      - keepalive tunables applied if provided (IDLE/INTERVAL/COUNT)
    """
    kwargs: Dict[str, Any] = {}
    ct_env = _env_int("DB_CONNECT_TIMEOUT")
    kwargs["connect_timeout"] = ct_env if ct_env is not None else 10

    ka_env = os.environ.get("DB_KEEPALIVES")
    if ka_env is None:
        kwargs["keepalives"] = 1
    else:
        kwargs["keepalives"] = 0 if str(ka_env).lower() in ("0", "false") else 1

    idle = _env_int("DB_KEEPALIVES_IDLE")
    if idle is not None:
        kwargs["keepalives_idle"] = idle
    interval = _env_int("DB_KEEPALIVES_INTERVAL")
    if interval is not None:
        kwargs["keepalives_interval"] = interval
    count = _env_int("DB_KEEPALIVES_COUNT")
    if count is not None:
        kwargs["keepalives_count"] = count
    return kwargs


def _retry_policy() -> tuple[int, float]:
    """Return (extra attempts, delay in seconds) for transient failures."""
    retries = _env_int("DB_QUERY_RETRIES", 3)
    delay_ms = _env_int("DB_QUERY_RETRY_DELAY_MS", 500)
    return max(int(retries or 0), 0), max(int(delay_ms or 0), 0) / 1000.0


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Initialize a global connection pool using DATABASE_URL.

    Safe to call multiple times; subsequent calls are ignored once a pool exists.
    """
    global _POOL
    if _POOL is not None:
        return
    url = os.environ.get("DATABASE_URL")
    if not url:
        # Leave _POOL as None; callers will fall back to direct connections
        return
    _POOL = pg_pool.ThreadedConnectionPool(minconn, maxconn, dsn=url, **_connect_kwargs())


def close_pool() -> None:
    global _POOL
    if _POOL is None:
        return
    try:
        _POOL.closeall()
    finally:
        _POOL = None


@contextmanager
def _get_conn():
    """Yield a database connection from the pool if available, else direct.

    Pooled connections are pinged with ``SELECT 1`` before use; a stale one is
    discarded and replaced once before giving up.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set; configure a PostgreSQL connection string")
    if _POOL is not None:
        retried = False
        while True:
            conn = _POOL.getconn()
            healthy = True
            try:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                # Clear implicit transaction started by SELECT when autocommit is off
                try:
                    if not getattr(conn, "autocommit", False):
                        conn.rollback()
                except Exception:
                    pass
            except Exception:
                healthy = False

            if not healthy:
                try:
                    _POOL.putconn(conn, close=True)
                except Exception:
                    pass
                if retried:
                    raise psycopg2.OperationalError("Failed to acquire healthy DB connection after retry")
                retried = True
                continue

            try:
                try:
                    yield conn
                except Exception:
                    try:
                        conn.rollback()
                    except Exception:
                        pass
                    raise
            finally:
                # Read-only service: never leave a transaction open on a pooled connection
                try:
                    if getattr(conn, "closed", 0) == 0 and not getattr(conn, "autocommit", False):
                        # status 0 = idle, 1 = active, 2 = intrans, 3 = inerror
                        if getattr(conn, "status", 0) in (1, 2, 3):
                            try:
                                conn.rollback()
                            except Exception:
                                pass
                finally:
                    _POOL.putconn(conn)
            break
    else:
        conn = psycopg2.connect(url, **_connect_kwargs())
        try:
            try:
                yield conn
            except Exception:
                try:
                    conn.rollback()
                except Exception:
                    pass
                raise
        finally:
            try:
                conn.close()
            except Exception:
                pass


def _run(sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(sql, tuple(params))
        rows = cur.fetchall() or []
    return [dict(r) for r in rows]


def query(sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    """Run a parameterized read query and return rows as dicts.

    Transient connection errors are retried with a fixed delay; anything else
    (bad SQL, missing column) propagates on the first attempt.
    """
    retries, delay = _retry_policy()
    attempt = 0
    while True:
        try:
            return _run(sql, params)
        except _TRANSIENT_ERRORS as e:
            if attempt >= retries:
                logger.error("Max retry attempts reached for query: %s (%s)", sql, e)
                raise QueryError("Database query failed after max retry attempts.") from e
            attempt += 1
            logger.warning("Transient query failure (attempt %d of %d): %s", attempt, retries, e)
            if delay:
                time.sleep(delay)


def table_exists(table_name: str) -> bool:
    rows = query(
        """
        SELECT 1 AS present
        FROM information_schema.tables
        WHERE table_schema = current_schema() AND table_name = %s
        LIMIT 1
        """,
        (table_name,),
    )
    return bool(rows)


def server_info() -> Dict[str, Any]:
    rows = query("SELECT current_user AS db_user, current_database() AS db_name, version() AS server_version")
    return rows[0] if rows else {}
