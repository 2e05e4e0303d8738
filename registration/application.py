"""Application factory that wires the registration API to its configuration."""
from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from .config import Settings
from .database import Database, resolve_database_path
from .service import create_app


def create_application(
    *,
    database_path: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create the ASGI application from environment-provided settings."""

    settings = settings or Settings.from_env()
    db_path = resolve_database_path(database_path or settings.database_path)
    database = Database(db_path)

    return create_app(
        database=database,
        options=settings.options,
        cors_origins=settings.cors_origins,
    )


__all__ = ["create_application"]
