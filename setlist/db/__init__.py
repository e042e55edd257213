"""
Database module for Setlist Connect.

Provides async SQLAlchemy support for the SQL Backend Collection Store
(PostgreSQL in production, SQLite in development and tests).
"""
from __future__ import annotations

from setlist.db.database import Base, create_engine, create_session_factory, get_database_url
from setlist.db import models as models  # noqa: F401 — register with Base

__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "get_database_url",
]
