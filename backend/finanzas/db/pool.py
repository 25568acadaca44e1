from contextlib import contextmanager

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from finanzas.core.config import settings
from finanzas.db.repository import Repository

DB_POOL = ConnectionPool(
    settings.database_url,
    min_size=settings.db_pool_min,
    max_size=settings.db_pool_max,
    timeout=settings.db_pool_timeout,
    max_waiting=settings.db_pool_max_waiting,
    open=False,
    kwargs={"row_factory": dict_row},
)


def open_db_pool() -> None:
    DB_POOL.open()


def close_db_pool() -> None:
    DB_POOL.close()


@contextmanager
def db_conn():
    with DB_POOL.connection() as conn:
        yield conn


@contextmanager
def db_repository():
    """One request transaction: commit on success, roll back on any error."""
    with db_conn() as conn, conn.cursor() as cur:
        try:
            yield Repository(cur)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
