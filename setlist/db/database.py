"""
Async SQLAlchemy database setup.

Supports PostgreSQL (production) and SQLite (development).
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from setlist.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./setlist.db"


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


def get_database_url(settings: Settings) -> str:
    """Get the database URL from settings."""
    url = settings.database_url
    if not url:
        # Default to SQLite for development
        url = DEFAULT_DATABASE_URL
        logger.warning(f"No database URL configured, using SQLite: {url}")
    return url


def create_engine(database_url: str, echo: bool = False, **kwargs: Any) -> AsyncEngine:
    """Create the async engine; SQLite gets ``check_same_thread=False``."""
    connect_args: dict[str, Any] = kwargs.pop("connect_args", {})
    if database_url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)

    safe_url = database_url.split("@")[-1] if "@" in database_url else database_url
    logger.info(f"Initializing database: {safe_url}")
    return create_async_engine(
        database_url,
        echo=echo,
        connect_args=connect_args,
        **kwargs,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to *engine*."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
