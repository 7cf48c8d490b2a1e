from __future__ import annotations

import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from tradebook.registry.db import MIGRATIONS_DIR, Database

DSN = "postgresql://u:p@localhost:5432/testdb"


def _connected(cursor: MagicMock) -> tuple[Database, MagicMock]:
    cursor.__enter__ = MagicMock(return_value=cursor)
    cursor.__exit__ = MagicMock(return_value=False)
    conn = MagicMock()
    conn.cursor.return_value = cursor
    db = Database(DSN)
    db._conn = conn
    return db, conn


class TestDatabaseInit:
    def test_stores_dsn(self) -> None:
        db = Database(DSN)
        assert db._dsn == DSN

    def test_not_connected_by_default(self) -> None:
        db = Database(DSN)
        assert db._pool is None
        assert db._conn is None

    def test_public_surface(self) -> None:
        public = {name for name in vars(Database) if not name.startswith("_")}
        assert public == {"connect", "close", "execute", "transaction", "run_migrations", "health_check"}


class TestDatabaseExecute:
    def test_execute_returns_dicts(self) -> None:
        cursor = MagicMock()
        cursor.description = [("id",), ("instrument",)]
        cursor.fetchall.return_value = [
            {"id": 1, "instrument": "AAPL"},
            {"id": 2, "instrument": "MSFT"},
        ]
        db, conn = _connected(cursor)

        result = db.execute("SELECT id, instrument FROM tradebook.transactions")
        assert result == [{"id": 1, "instrument": "AAPL"}, {"id": 2, "instrument": "MSFT"}]
        conn.commit.assert_called_once()

    def test_execute_no_results(self) -> None:
        cursor = MagicMock()
        cursor.description = None
        db, _ = _connected(cursor)

        assert db.execute("DELETE FROM tradebook.accounts WHERE id = %s", (1,)) == []

    def test_execute_rolls_back_and_reraises(self) -> None:
        cursor = MagicMock()
        cursor.execute.side_effect = RuntimeError("boom")
        db, conn = _connected(cursor)

        with pytest.raises(RuntimeError, match="boom"):
            db.execute("SELECT 1")
        conn.rollback.assert_called_once()

    def test_execute_raises_when_not_connected(self) -> None:
        db = Database(DSN)
        with pytest.raises(RuntimeError, match="not connected"):
            db.execute("SELECT 1")


class TestTransaction:
    def test_serializable_by_default_and_commits(self) -> None:
        cursor = MagicMock()
        db, conn = _connected(cursor)

        with db.transaction() as cur:
            cur.execute("SELECT 1")

        first = cursor.execute.call_args_list[0]
        assert "SERIALIZABLE" in first.args[0]
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()

    def test_plain_transaction_skips_isolation(self) -> None:
        cursor = MagicMock()
        db, _ = _connected(cursor)

        with db.transaction(serializable=False) as cur:
            cur.execute("SELECT 1")

        assert cursor.execute.call_count == 1

    def test_rolls_back_on_error(self) -> None:
        cursor = MagicMock()
        db, conn = _connected(cursor)

        with pytest.raises(ValueError):
            with db.transaction():
                raise ValueError("bad")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_returns_pooled_connection(self) -> None:
        cursor = MagicMock()
        cursor.__enter__ = MagicMock(return_value=cursor)
        cursor.__exit__ = MagicMock(return_value=False)
        conn = MagicMock()
        conn.cursor.return_value = cursor
        pool = MagicMock()
        pool.getconn.return_value = conn
        db = Database(DSN)
        db._pool = pool

        with db.transaction():
            pass

        pool.putconn.assert_called_once_with(conn)


class TestMigrationRunner:
    def test_finds_and_runs_sql_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "001_create_table.sql").write_text("CREATE TABLE t (id INT);")
            (Path(tmpdir) / "002_add_column.sql").write_text("ALTER TABLE t ADD COLUMN name TEXT;")

            cursor = MagicMock()
            cursor.fetchall.return_value = []
            db, _ = _connected(cursor)

            applied = db.run_migrations(tmpdir)

            calls = cursor.execute.call_args_list
            assert "_migrations" in str(calls[0])
            assert "SELECT filename" in str(calls[1])
            assert len(calls) == 6  # CREATE + SELECT + 2*(SQL + INSERT)
            assert applied == ["001_create_table.sql", "002_add_column.sql"]

    def test_skips_applied_migrations(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "001_create_table.sql").write_text("CREATE TABLE t (id INT);")
            (Path(tmpdir) / "002_add_column.sql").write_text("ALTER TABLE t ADD COLUMN name TEXT;")

            cursor = MagicMock()
            cursor.fetchall.return_value = [{"filename": "001_create_table.sql"}]
            db, _ = _connected(cursor)

            applied = db.run_migrations(tmpdir)

            assert len(cursor.execute.call_args_list) == 4
            assert applied == ["002_add_column.sql"]

    def test_packaged_schema_present(self) -> None:
        files = sorted(p.name for p in MIGRATIONS_DIR.glob("*.sql"))
        assert files[0] == "001_initial_schema.sql"
        sql = (MIGRATIONS_DIR / files[0]).read_text()
        assert "tradebook.transactions" in sql
        assert "GENERATED BY DEFAULT AS IDENTITY" in sql


class TestHealthCheck:
    def test_healthy(self) -> None:
        cursor = MagicMock()
        cursor.description = [("ok",)]
        cursor.fetchall.return_value = [{"ok": 1}]
        db, _ = _connected(cursor)

        assert db.health_check() is True

    def test_unhealthy(self) -> None:
        db = Database(DSN)
        assert db.health_check() is False


class TestContextManager:
    @patch("tradebook.registry.db.HAS_POOL", False)
    @patch("tradebook.registry.db.psycopg")
    def test_context_manager(self, mock_psycopg: MagicMock) -> None:
        mock_conn = MagicMock()
        mock_psycopg.connect.return_value = mock_conn

        with Database(DSN) as db:
            assert db._conn is mock_conn

        mock_conn.close.assert_called_once()
