from __future__ import annotations

import os
from decimal import Decimal
from unittest.mock import patch

from tradebook.config import AppConfig, DatabaseConfig, load_config

_KEYS = (
    "DATABASE_URL", "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD",
    "UNREALIZED_ESTIMATE_RATE", "CREATE_MAX_ATTEMPTS", "RETRY_BASE_DELAY_MS",
    "RETRY_JITTER_MS", "DEFAULT_PAGE_SIZE", "CORS_ORIGINS",
)


def _clean_env(**overrides: str) -> dict[str, str]:
    env = {k: v for k, v in os.environ.items() if k not in _KEYS}
    env.update(overrides)
    return env


class TestDatabaseConfig:
    def test_dsn_property(self) -> None:
        cfg = DatabaseConfig(
            host="localhost", port=5432, database="testdb", user="u", password="p"
        )
        assert cfg.dsn == "postgresql://u:p@localhost:5432/testdb"


class TestLoadConfig:
    def test_loads_from_env(self) -> None:
        env = _clean_env(
            DATABASE_URL="postgresql://u:p@host:5432/db",
            UNREALIZED_ESTIMATE_RATE="0.25",
            CREATE_MAX_ATTEMPTS="3",
            RETRY_BASE_DELAY_MS="50",
            RETRY_JITTER_MS="10",
            DEFAULT_PAGE_SIZE="25",
            CORS_ORIGINS="https://a.example, https://b.example,",
        )
        with patch.dict(os.environ, env, clear=True):
            cfg = load_config()

        assert cfg.db_dsn == "postgresql://u:p@host:5432/db"
        assert cfg.unrealized_estimate_rate == Decimal("0.25")
        assert cfg.create_max_attempts == 3
        assert cfg.retry_base_delay_ms == 50
        assert cfg.retry_jitter_ms == 10
        assert cfg.default_page_size == 25
        assert cfg.cors_origins == ("https://a.example", "https://b.example")

    def test_defaults(self) -> None:
        with patch.dict(os.environ, _clean_env(), clear=True):
            cfg = load_config()

        assert cfg.db_dsn == ""
        assert cfg.unrealized_estimate_rate == Decimal("0.10")
        assert cfg.create_max_attempts == 5
        assert cfg.retry_base_delay_ms == 100
        assert cfg.retry_jitter_ms == 100
        assert cfg.default_page_size == 100
        assert cfg.cors_origins == ("http://localhost:3000",)

    def test_dsn_assembled_from_parts(self) -> None:
        env = _clean_env(DB_HOST="db", DB_PORT="6543", DB_NAME="ledger", DB_USER="me", DB_PASSWORD="pw")
        with patch.dict(os.environ, env, clear=True):
            cfg = load_config()
        assert cfg.db_dsn == "postgresql://me:pw@db:6543/ledger"

    def test_database_url_wins_over_parts(self) -> None:
        env = _clean_env(DATABASE_URL="postgresql://x@y/z", DB_HOST="db")
        with patch.dict(os.environ, env, clear=True):
            cfg = load_config()
        assert cfg.db_dsn == "postgresql://x@y/z"

    def test_app_config_frozen(self) -> None:
        cfg = AppConfig(db_dsn="")
        try:
            cfg.db_dsn = "x"  # type: ignore[misc]
            assert False, "Should be frozen"
        except AttributeError:
            pass
