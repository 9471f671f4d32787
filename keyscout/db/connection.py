"""
PostgreSQL connection pool for the key store.

One process-wide ``ThreadedConnectionPool``, created lazily from
``keyscout.config``. Sessions run in UTC so TIMESTAMPTZ columns come back as
UTC-aware datetimes. Connections broken by a server restart are dropped from
the pool instead of being handed out again, so the long-running loops recover
on their next cycle.

Usage:
    from keyscout.db import get_connection
    with get_connection() as conn, conn.cursor() as cur:
        cur.execute("SELECT 1")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

import psycopg2
import psycopg2.extensions
import psycopg2.pool

from keyscout.config import get_config

logger = logging.getLogger(__name__)

APPLICATION_NAME = "keyscout"
CONNECT_TIMEOUT = 5

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_lock = threading.Lock()


def _unreachable(e: Exception) -> ConnectionError:
    cfg = get_config().db
    return ConnectionError(
        f"Cannot connect to PostgreSQL at {cfg.host or 'local socket'}:{cfg.port}/{cfg.name}: "
        f"{str(e).strip()}. Check KEYSCOUT_DB_* and that PostgreSQL is running."
    )


def get_pool(minconn: int = 1, maxconn: int = 10) -> psycopg2.pool.ThreadedConnectionPool:
    """Return the shared pool, creating it on first use.

    Raises:
        ConnectionError: PostgreSQL is unreachable with the configured settings.
    """
    global _pool
    with _lock:
        if _pool is None or _pool.closed:
            cfg = get_config().db
            logger.debug("Opening pool to %s/%s (max %d)", cfg.host or "socket", cfg.name, maxconn)
            try:
                _pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn,
                    maxconn,
                    connect_timeout=CONNECT_TIMEOUT,
                    application_name=APPLICATION_NAME,
                    options="-c timezone=UTC",
                    **cfg.dict,
                )
            except psycopg2.OperationalError as e:
                raise _unreachable(e) from e
        return _pool


@contextmanager
def get_connection() -> Generator[psycopg2.extensions.connection, None, None]:
    """Borrow a connection for one transaction.

    Commits when the block exits normally, rolls back on exception. A
    connection that died underneath the block is closed rather than returned.

    Raises:
        ConnectionError: the pool cannot hand out a live connection.
    """
    pool = get_pool()
    try:
        conn = pool.getconn()
    except psycopg2.OperationalError as e:
        raise _unreachable(e) from e

    broken = False
    try:
        yield conn
        conn.commit()
    except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
        broken = bool(conn.closed)
        if not broken:
            conn.rollback()
        if broken:
            raise _unreachable(e) from e
        raise
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn, close=broken or bool(conn.closed))


def close_pool() -> None:
    """Close every pooled connection. The next ``get_pool()`` opens a new pool."""
    global _pool
    with _lock:
        if _pool is not None:
            _pool.closeall()
            _pool = None
