"""
Local persisted state.

A per-device JSON file that survives restarts and is never shared.  Every
value here is a best-effort cache: the backend is authoritative once
reachable.  An unreadable or corrupt file is discarded with a warning, and
a failed save is logged and otherwise ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class LocalState(BaseModel):
    """Shape of the local state file."""

    last_active_at: Optional[datetime] = None
    # gig_id → panel/section → done
    build_complete: dict[str, dict[str, bool]] = Field(default_factory=dict)
    # gig_id → section → ordered song ids
    section_order: dict[str, dict[str, list[str]]] = Field(default_factory=dict)
    # gig_id → song ids already queued as now-playing
    locked_songs: dict[str, list[str]] = Field(default_factory=dict)
    # gig_id → hidden section labels
    hidden_sections: dict[str, list[str]] = Field(default_factory=dict)
    last_tenant_id: Optional[str] = None


class LocalStateCache:
    """Loads, mutates and saves ``LocalState``."""

    def __init__(self, path: Path | str | None, session_timeout_seconds: int = 2 * 60 * 60) -> None:
        self._path = Path(path).expanduser() if path else None
        self._timeout = timedelta(seconds=session_timeout_seconds)
        self._state = self._load()

    @property
    def state(self) -> LocalState:
        return self._state

    def _load(self) -> LocalState:
        if self._path is None or not self._path.exists():
            return LocalState()
        try:
            return LocalState.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("⚠️ Discarding unreadable local state %s: %s", self._path, exc)
            return LocalState()

    def save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(self._state.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("⚠️ Could not save local state %s: %s", self._path, exc)

    def _update(self, **changes: object) -> None:
        self._state = self._state.model_copy(update=changes)
        self.save()

    # ------------------------------------------------------------------
    # Session timeout
    # ------------------------------------------------------------------

    def touch(self, now: datetime | None = None) -> None:
        """Record activity."""
        self._update(last_active_at=now or datetime.now(timezone.utc))

    def is_session_expired(self, now: datetime | None = None) -> bool:
        """True when the last recorded activity is older than the timeout."""
        last = self._state.last_active_at
        if last is None:
            return False
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return (now or datetime.now(timezone.utc)) - last > self._timeout

    # ------------------------------------------------------------------
    # Locked songs
    # ------------------------------------------------------------------

    def is_locked(self, gig_id: str, song_id: str) -> bool:
        return song_id in self._state.locked_songs.get(gig_id, [])

    def lock_song(self, gig_id: str, song_id: str) -> None:
        if self.is_locked(gig_id, song_id):
            return
        locked = {k: list(v) for k, v in self._state.locked_songs.items()}
        locked.setdefault(gig_id, []).append(song_id)
        self._update(locked_songs=locked)

    def clear_locked(self, gig_id: str) -> None:
        locked = {k: list(v) for k, v in self._state.locked_songs.items() if k != gig_id}
        self._update(locked_songs=locked)

    # ------------------------------------------------------------------
    # Build panels and sections
    # ------------------------------------------------------------------

    def set_build_complete(self, gig_id: str, panel: str, done: bool = True) -> None:
        flags = {k: dict(v) for k, v in self._state.build_complete.items()}
        flags.setdefault(gig_id, {})[panel] = done
        self._update(build_complete=flags)

    def is_build_complete(self, gig_id: str, panel: str) -> bool:
        return self._state.build_complete.get(gig_id, {}).get(panel, False)

    def set_section_order(self, gig_id: str, section: str, song_ids: list[str]) -> None:
        orders = {k: {s: list(ids) for s, ids in v.items()} for k, v in self._state.section_order.items()}
        orders.setdefault(gig_id, {})[section] = list(song_ids)
        self._update(section_order=orders)

    def section_order(self, gig_id: str) -> dict[str, list[str]]:
        return {s: list(ids) for s, ids in self._state.section_order.get(gig_id, {}).items()}

    def toggle_hidden_section(self, gig_id: str, section: str) -> bool:
        """Flip a section's hidden flag; returns the new value."""
        hidden = {k: list(v) for k, v in self._state.hidden_sections.items()}
        labels = hidden.setdefault(gig_id, [])
        if section in labels:
            labels.remove(section)
            now_hidden = False
        else:
            labels.append(section)
            now_hidden = True
        self._update(hidden_sections=hidden)
        return now_hidden

    def set_last_tenant(self, tenant_id: str | None) -> None:
        self._update(last_tenant_id=tenant_id)

    def forget_gig(self, gig_id: str) -> None:
        """Drop every cached value scoped to *gig_id*."""
        self._update(
            build_complete={k: v for k, v in self._state.build_complete.items() if k != gig_id},
            section_order={k: v for k, v in self._state.section_order.items() if k != gig_id},
            locked_songs={k: v for k, v in self._state.locked_songs.items() if k != gig_id},
            hidden_sections={k: v for k, v in self._state.hidden_sections.items() if k != gig_id},
        )
