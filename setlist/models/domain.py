"""
Snapshot models for Setlist Connect.

The whole application state is a single immutable ``AppState`` value.  Every
local mutation produces a new ``AppState`` (via ``model_copy(update=...)``);
nothing is ever mutated in place, so a ``HistoryEntry`` can hold the prior
state and undo can restore it exactly.

Key concepts:
- Song / SingerKeyBinding: the global, shared library
- Gig: an event with its own ordered song list
- section_overrides / SingerKeyBinding.gig_overrides: per-gig overlays that
  are layered over the shared library at read time
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from setlist.config import DEFAULT_SECTIONS, DEFAULT_SPECIAL_TYPES, DEFAULT_TAGS


class Role(str, Enum):
    """Acting role on this device.  Only admins may mutate."""

    ADMIN = "admin"
    USER = "user"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class SingerKeyBinding(_Frozen):
    """
    A singer's key for a song.

    ``gig_overrides`` maps gig_id → key for that gig only.  A missing entry
    means "use default_key at that gig".
    """
    singer: str
    default_key: str
    gig_overrides: dict[str, str] = Field(default_factory=dict)

    def key_for(self, gig_id: str) -> str:
        """Return the key this singer uses at *gig_id*."""
        return self.gig_overrides.get(gig_id, self.default_key)


class Song(_Frozen):
    """A song in the shared library."""
    id: str
    title: str
    artist: str = ""
    original_key: str = ""
    audio_url: str = ""
    tags: tuple[str, ...] = ()
    keys: tuple[SingerKeyBinding, ...] = ()
    special_played_count: int = 0

    def has_tag(self, tag: str) -> bool:
        """Case-insensitive tag membership."""
        wanted = tag.casefold()
        return any(t.casefold() == wanted for t in self.tags)

    def binding_for(self, singer: str) -> Optional[SingerKeyBinding]:
        """Return the binding for *singer*, or None if the singer is unassigned."""
        for binding in self.keys:
            if binding.singer == singer:
                return binding
        return None


class Gig(_Frozen):
    """
    A gig (event).

    ``song_ids`` order is gig-local and meaningful.  ``sections`` lists the
    section labels the gig is built from, in display order.
    ``next_sort_order`` is one past the highest membership sort key the
    backend holds for this gig, including rows of songs no longer listed.
    """
    id: str
    name: str
    date: str
    venue: str = ""
    song_ids: tuple[str, ...] = ()
    sections: tuple[str, ...] = tuple(DEFAULT_SECTIONS)
    next_sort_order: int = 0

    def with_appended(self, song_ids: Sequence[str]) -> Gig:
        """Append *song_ids*, reserving one sort key for each."""
        return self.model_copy(update={
            "song_ids": self.song_ids + tuple(song_ids),
            "next_sort_order": self.next_sort_order + len(song_ids),
        })


class SpecialRequest(_Frozen):
    """
    A gig-scoped request.

    Carries its own singers and key, independent of any SingerKeyBinding
    overrides.  ``song_id`` is None for a song that is not catalogued yet.
    """
    id: str
    gig_id: str
    request_type: str
    song_title: str
    song_artist: str = ""
    song_id: Optional[str] = None
    singers: tuple[str, ...] = ()
    key: str = ""
    note: Optional[str] = None
    dj_only: bool = False
    external_audio_url: Optional[str] = None


class Musician(_Frozen):
    """A rostered musician (core band or sub)."""
    id: str
    name: str
    roster: Literal["core", "sub"] = "core"
    email: Optional[str] = None
    phone: Optional[str] = None
    instruments: tuple[str, ...] = ()
    singer: Optional[Literal["male", "female", "other"]] = None


class GigMusician(_Frozen):
    """Assignment of a musician to a gig."""
    gig_id: str
    musician_id: str
    status: Literal["active", "out"] = "active"
    note: Optional[str] = None


class Document(_Frozen):
    """A chart, lyric sheet or lead sheet for a song."""
    id: str
    song_id: str
    doc_type: Literal["Chart", "Lyrics", "Lead Sheet"] = "Chart"
    instrument: str = "All"
    title: str = ""
    url: Optional[str] = None
    content: Optional[str] = None


class AppState(_Frozen):
    """
    The single in-memory snapshot of application state.

    ``section_overrides`` is keyed by (gig_id, song_id) and holds the decoded
    section label for that pair.  ``now_playing`` maps gig_id → song_id.
    """
    songs: tuple[Song, ...] = ()
    gigs: tuple[Gig, ...] = ()
    special_requests: tuple[SpecialRequest, ...] = ()
    tags_catalog: tuple[str, ...] = tuple(DEFAULT_TAGS)
    special_types: tuple[str, ...] = tuple(DEFAULT_SPECIAL_TYPES)
    singers_catalog: tuple[str, ...] = ()
    documents: tuple[Document, ...] = ()
    musicians: tuple[Musician, ...] = ()
    gig_musicians: tuple[GigMusician, ...] = ()
    section_overrides: dict[tuple[str, str], str] = Field(default_factory=dict)
    now_playing: dict[str, Optional[str]] = Field(default_factory=dict)

    def song(self, song_id: str) -> Optional[Song]:
        for song in self.songs:
            if song.id == song_id:
                return song
        return None

    def gig(self, gig_id: str) -> Optional[Gig]:
        for gig in self.gigs:
            if gig.id == gig_id:
                return gig
        return None

    def musician(self, musician_id: str) -> Optional[Musician]:
        for musician in self.musicians:
            if musician.id == musician_id:
                return musician
        return None

    def replace_song(self, song: Song) -> AppState:
        """Return a copy with the song of the same id swapped for *song*."""
        return self.model_copy(update={
            "songs": tuple(song if s.id == song.id else s for s in self.songs),
        })

    def replace_gig(self, gig: Gig) -> AppState:
        """Return a copy with the gig of the same id swapped for *gig*."""
        return self.model_copy(update={
            "gigs": tuple(gig if g.id == gig.id else g for g in self.gigs),
        })

    def gig_songs(self, gig_id: str) -> list[Song]:
        """Songs of a gig in gig order, skipping ids not in the library."""
        gig = self.gig(gig_id)
        if gig is None:
            return []
        by_id = {song.id: song for song in self.songs}
        return [by_id[sid] for sid in gig.song_ids if sid in by_id]


class HistoryEntry(_Frozen):
    """A committed local mutation: its label and the state before it."""
    label: str
    state: AppState
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def unique_tags(*groups: tuple[str, ...] | list[str]) -> tuple[str, ...]:
    """Merge tag lists, dropping case-insensitive duplicates (first spelling wins)."""
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for tag in group:
            cleaned = tag.strip()
            folded = cleaned.casefold()
            if not cleaned or folded in seen:
                continue
            seen.add(folded)
            merged.append(cleaned)
    return tuple(merged)
