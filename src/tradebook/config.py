from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class DatabaseConfig:
    host: str
    port: int
    database: str
    user: str
    password: str

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class AppConfig:
    db_dsn: str
    unrealized_estimate_rate: Decimal = Decimal("0.10")
    create_max_attempts: int = 5
    retry_base_delay_ms: int = 100
    retry_jitter_ms: int = 100
    default_page_size: int = 100
    cors_origins: tuple[str, ...] = field(default=("http://localhost:3000",))


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(v.strip() for v in value.split(",") if v.strip())


def _database_dsn() -> str:
    """DATABASE_URL wins; otherwise assemble one from the DB_* variables."""
    url = os.environ.get("DATABASE_URL", "")
    if url or not os.environ.get("DB_HOST"):
        return url
    return DatabaseConfig(
        host=os.environ["DB_HOST"],
        port=int(os.environ.get("DB_PORT", "5432")),
        database=os.environ.get("DB_NAME", "tradebook"),
        user=os.environ.get("DB_USER", "tradebook"),
        password=os.environ.get("DB_PASSWORD", ""),
    ).dsn


def load_config() -> AppConfig:
    """Load application config from environment variables.

    Loads .env file if present in the current directory.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    return AppConfig(
        db_dsn=_database_dsn(),
        unrealized_estimate_rate=Decimal(os.environ.get("UNREALIZED_ESTIMATE_RATE", "0.10")),
        create_max_attempts=int(os.environ.get("CREATE_MAX_ATTEMPTS", "5")),
        retry_base_delay_ms=int(os.environ.get("RETRY_BASE_DELAY_MS", "100")),
        retry_jitter_ms=int(os.environ.get("RETRY_JITTER_MS", "100")),
        default_page_size=int(os.environ.get("DEFAULT_PAGE_SIZE", "100")),
        cors_origins=_split_csv(os.environ.get("CORS_ORIGINS", "http://localhost:3000")),
    )
