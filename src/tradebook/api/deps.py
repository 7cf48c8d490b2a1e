"""Dependency injection for the FastAPI application."""

from __future__ import annotations

from tradebook.config import AppConfig
from tradebook.registry.db import Database
from tradebook.registry.queries import Registry


class AppState:
    """Holds shared application state initialised during lifespan."""

    def __init__(self) -> None:
        self.config: AppConfig | None = None
        self.db: Database | None = None
        self.registry: Registry | None = None


# Singleton shared across the app
app_state = AppState()


def get_registry() -> Registry:
    if app_state.registry is None:
        raise RuntimeError("Registry not initialised")
    return app_state.registry


def get_config() -> AppConfig:
    if app_state.config is None:
        raise RuntimeError("Config not initialised")
    return app_state.config
