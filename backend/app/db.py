from contextlib import contextmanager
from typing import Optional

from psycopg.rows import dict_row

# psycopg3 connection pooling lives in a separate package.
from psycopg_pool import ConnectionPool

from .config import settings

_pool: Optional[ConnectionPool] = None


def open_pool(conninfo: Optional[str] = None) -> Optional[ConnectionPool]:
    """Create the shared pool on first use. Returns None in cache-only mode."""
    global _pool
    if _pool is not None:
        return _pool
    dsn = (conninfo or settings.db_url or "").strip()
    if not dsn:
        return None
    # open=False keeps startup fast when the database is down; connections are
    # attempted lazily and failures surface as BackendResult errors.
    _pool = ConnectionPool(
        conninfo=dsn,
        min_size=settings.db_pool_min,
        max_size=settings.db_pool_max,
        kwargs={"row_factory": dict_row},
        open=False,
    )
    _pool.open(wait=False)
    return _pool


@contextmanager
def _pooled_conn(pool: ConnectionPool):
    # pool.connection() commits on success, rolls back on exception and
    # returns the connection to the pool.
    # Waiting longer than db_timeout raises PoolTimeout, an OperationalError.
    with pool.connection(timeout=settings.db_timeout) as conn:
        yield conn


def get_conn(pool: ConnectionPool):
    return _pooled_conn(pool)


def close_pool() -> None:
    global _pool
    if _pool is None:
        return
    pool, _pool = _pool, None
    pool.close()
