"""
Setlist Connect Configuration

Environment-based configuration for the sync engine and the ``setlist`` CLI.
"""
import logging
from functools import lru_cache
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _app_version_from_package() -> str:
    """Read version from pyproject.toml — the single source of truth."""
    try:
        from importlib.metadata import version
        return version("setlist-connect")
    except Exception:
        pass
    # Fallback: parse pyproject.toml directly (dev / non-installed mode)
    try:
        from pathlib import Path
        import re
        pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
        match = re.search(r'^version\s*=\s*"([^"]+)"', pyproject.read_text(), re.MULTILINE)
        if match:
            return match.group(1)
    except Exception:
        pass
    return "0.0.0-unknown"


# Descriptive tags every tenant starts with, even before any song is tagged.
DEFAULT_TAGS: list[str] = ["Special Request", "Dinner", "Latin", "Dance"]

DEFAULT_SPECIAL_TYPES: list[str] = [
    "First Dance",
    "Last Dance",
    "Parent Dance",
    "Anniversary",
]

# Sections every gig is built from.  Numbered variants ("Dance Set 2") are
# added per gig when a section override references them.
DEFAULT_SECTIONS: list[str] = ["Dinner", "Latin", "Dance"]

INSTRUMENTS: list[str] = ["Vocals", "Guitar", "Keys", "Bass", "Drums", "Sax", "Trumpet"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service Info (app_version: single source is pyproject.toml when installed; else fallback)
    app_name: str = "Setlist Connect"
    app_version: str = _app_version_from_package()
    debug: bool = False

    # Backend Collection Store
    # memory: in-process (local mode, nothing shared across devices)
    # sql:    SQLAlchemy async URL, e.g. sqlite+aiosqlite:///./setlist.db
    # rest:   PostgREST-style gateway with an SSE change stream
    backend: Literal["memory", "sql", "rest"] = "memory"
    database_url: Optional[str] = None
    rest_url: Optional[str] = None
    rest_api_key: Optional[str] = None  # never logged
    rest_timeout: int = 30  # seconds
    realtime_path: str = "/realtime/v1/changes"

    # Tenant scoping: every reload filters by tenant_id, every insert carries it
    tenant_id: Optional[str] = None

    # Acting role for this device; only admin may mutate
    role: Optional[Literal["admin", "user"]] = None

    # Now-playing pointer is polled rather than pushed
    now_playing_poll_seconds: float = 5.0

    # Session timeout (two hours of inactivity)
    session_timeout_seconds: int = 2 * 60 * 60

    # Best-effort local cache (survives restarts, never shared)
    local_state_path: str = "~/.setlist/state.json"

    @model_validator(mode="after")
    def _warn_rest_without_url(self) -> "Settings":
        """Warn when the REST backend is selected but no gateway URL is set."""
        if self.backend == "rest" and not self.rest_url:
            logging.getLogger(__name__).warning(
                "SETLIST_BACKEND=rest but SETLIST_REST_URL is not set. "
                "Every backend call will fail until it is configured."
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="SETLIST_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience access
settings = get_settings()
