"""FastAPI application factory with CORS and lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tradebook.api.deps import app_state
from tradebook.config import load_config
from tradebook.registry.db import Database
from tradebook.registry.queries import Registry
from tradebook.registry.retry import RetryPolicy

logger = logging.getLogger(__name__)

API_PREFIX = "/api/tradebook"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the database on startup and close it on shutdown."""
    config = load_config()

    db = Database(config.db_dsn)
    db.connect()

    app_state.config = config
    app_state.db = db
    app_state.registry = Registry(db, retry=RetryPolicy.from_config(config))
    logger.info("API started, database ready")
    yield

    db.close()
    app_state.registry = None
    app_state.db = None
    logger.info("API shutdown complete")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        use_lifespan: If False, skip the production lifespan (useful for testing
            where deps are injected via app_state directly).
    """
    app = FastAPI(
        title="Tradebook API",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(load_config().cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from tradebook.api.routes import accounts, analytics, system, transactions

    app.include_router(system.router, prefix=API_PREFIX, tags=["system"])
    app.include_router(accounts.router, prefix=API_PREFIX, tags=["accounts"])
    app.include_router(transactions.router, prefix=API_PREFIX, tags=["transactions"])
    app.include_router(analytics.router, prefix=API_PREFIX, tags=["analytics"])

    return app
