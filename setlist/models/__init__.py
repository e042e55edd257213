"""Snapshot models for Setlist Connect."""
from __future__ import annotations

from setlist.models.domain import (
    AppState,
    Document,
    Gig,
    GigMusician,
    HistoryEntry,
    Musician,
    Role,
    SingerKeyBinding,
    Song,
    SpecialRequest,
    unique_tags,
)

__all__ = [
    "AppState",
    "Document",
    "Gig",
    "GigMusician",
    "HistoryEntry",
    "Musician",
    "Role",
    "SingerKeyBinding",
    "Song",
    "SpecialRequest",
    "unique_tags",
]
