from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType
from typing import Iterator

import psycopg
from psycopg.rows import dict_row

try:
    from psycopg_pool import ConnectionPool

    HAS_POOL = True
except ImportError:
    HAS_POOL = False

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_MIGRATIONS_TABLE = """
    CREATE TABLE IF NOT EXISTS _migrations (
        filename TEXT PRIMARY KEY,
        applied_at TIMESTAMPTZ DEFAULT NOW()
    )
"""


class Database:
    """psycopg 3 access to the ledger store.

    Pools connections when psycopg_pool is installed and otherwise shares a
    single connection. Rows always come back as plain dicts.
    """

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool: ConnectionPool | None = None
        self._conn: psycopg.Connection | None = None

    def connect(self) -> None:
        if HAS_POOL:
            self._pool = ConnectionPool(
                self._dsn,
                min_size=self._min_size,
                max_size=self._max_size,
                kwargs={"row_factory": dict_row},
                open=True,
            )
            self._pool.wait()
            logger.info("Ledger store pool ready (%d-%d connections)", self._min_size, self._max_size)
        else:
            self._conn = psycopg.connect(self._dsn, row_factory=dict_row)
            logger.info("Ledger store connected without pooling")

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _get_connection(self) -> psycopg.Connection:
        if self._pool is not None:
            return self._pool.getconn()
        if self._conn is not None:
            return self._conn
        raise RuntimeError("Ledger store not connected, call connect() first")

    def _put_connection(self, conn: psycopg.Connection) -> None:
        if self._pool is not None:
            self._pool.putconn(conn)

    @contextmanager
    def _session(self) -> Iterator[psycopg.Connection]:
        """Borrow a connection; commit on clean exit, roll back on error."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._put_connection(conn)

    def execute(self, query: str, params: tuple | None = None) -> list[dict]:
        """Run one statement in its own transaction and return any rows."""
        with self._session() as conn, conn.cursor() as cur:
            cur.execute(query, params)
            if cur.description is None:
                return []
            return [dict(row) for row in cur.fetchall()]

    @contextmanager
    def transaction(self, serializable: bool = True) -> Iterator[psycopg.Cursor]:
        """Yield a cursor whose statements commit or roll back together.

        With ``serializable`` the block runs at SERIALIZABLE isolation, and a
        conflicting concurrent writer surfaces as SerializationFailure.
        """
        with self._session() as conn, conn.cursor() as cur:
            if serializable:
                cur.execute("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE")
            yield cur

    def run_migrations(self, migrations_dir: str | Path = MIGRATIONS_DIR) -> list[str]:
        """Apply pending ``*.sql`` files in filename order.

        Each file commits together with its ``_migrations`` row. Returns the
        filenames applied by this call.
        """
        self.execute(_MIGRATIONS_TABLE)
        done = {row["filename"] for row in self.execute("SELECT filename FROM _migrations")}

        applied: list[str] = []
        for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
            if sql_file.name in done:
                logger.debug("Migration %s already applied", sql_file.name)
                continue
            logger.info("Applying migration %s", sql_file.name)
            with self._session() as conn, conn.cursor() as cur:
                cur.execute(sql_file.read_text())
                cur.execute("INSERT INTO _migrations (filename) VALUES (%s)", (sql_file.name,))
            applied.append(sql_file.name)
        return applied

    def health_check(self) -> bool:
        try:
            rows = self.execute("SELECT 1 AS ok")
        except (psycopg.Error, RuntimeError):
            logger.exception("Ledger store health check failed")
            return False
        return bool(rows) and rows[0].get("ok") == 1

    def __enter__(self) -> Database:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
