"""Canonical wire shapes for Backend Collection Store rows.

This module is the **single source of truth for every collection name and
row shape** exchanged with the backend.  Adapters (memory, SQL, REST) and the
reconciler import from here; do not redefine shapes ad hoc.

## Collection catalog

Global (shared across every gig):
  SongRow               — SetlistSongs (soft-deleted via ``deleted_at``)
  SongTagRow            — SetlistSongTags (descriptive tags *and* encoded
                          section tokens, see ``setlist.core.section_codec``)
  SongKeyRow            — SetlistSongKeys (singer → default key)
  MusicianRow           — SetlistMusicians (soft-deleted via ``deleted_at``)
  DocumentRow           — SetlistDocuments (charts, lyrics, lead sheets)

Gig-scoped:
  GigRow                — SetlistGigs (soft-deleted via ``deleted_at``)
  GigSongRow            — SetlistGigSongs (ordered membership, ``sort_order``)
  GigSingerKeyRow       — SetlistGigSingerKeys (per-gig key override)
  SpecialRequestRow     — SetlistSpecialRequests
  GigMusicianRow        — SetlistGigMusicians (status active/out)
  NowPlayingRow         — SetlistGigNowPlaying (one row per gig, polled)
  PlayedSongRow         — SetlistPlayedSongs (append-only log, not tracked)

Every row may carry ``tenant_id``; full reloads filter on it when a tenant
is configured.
"""
from __future__ import annotations

from enum import Enum
from typing import TypedDict

# Untyped row as it crosses the adapter boundary.  Narrow to a TypedDict
# below as soon as the collection is known.
Row = dict[str, object]


class Collection(str, Enum):
    """Backend collections, valued by their wire table name."""

    SONGS = "SetlistSongs"
    SONG_TAGS = "SetlistSongTags"
    SONG_KEYS = "SetlistSongKeys"
    GIGS = "SetlistGigs"
    GIG_SONGS = "SetlistGigSongs"
    GIG_SINGER_KEYS = "SetlistGigSingerKeys"
    SPECIAL_REQUESTS = "SetlistSpecialRequests"
    DOCUMENTS = "SetlistDocuments"
    MUSICIANS = "SetlistMusicians"
    GIG_MUSICIANS = "SetlistGigMusicians"
    NOW_PLAYING = "SetlistGigNowPlaying"
    PLAYED_SONGS = "SetlistPlayedSongs"


# Collections whose change notifications trigger a full reload.  The played
# log is write-only and never read back.
TRACKED_COLLECTIONS: tuple[Collection, ...] = (
    Collection.SONGS,
    Collection.SONG_TAGS,
    Collection.SONG_KEYS,
    Collection.GIGS,
    Collection.GIG_SONGS,
    Collection.GIG_SINGER_KEYS,
    Collection.SPECIAL_REQUESTS,
    Collection.DOCUMENTS,
    Collection.MUSICIANS,
    Collection.GIG_MUSICIANS,
    Collection.NOW_PLAYING,
)

# Collections that are soft-deleted; reloads only fetch live rows.
SOFT_DELETED_COLLECTIONS: frozenset[Collection] = frozenset({
    Collection.SONGS,
    Collection.GIGS,
    Collection.MUSICIANS,
})


class SongRow(TypedDict, total=False):
    """A catalogued song."""

    id: str
    tenant_id: str | None
    title: str
    artist: str | None
    audio_url: str | None
    original_key: str | None
    deleted_at: str | None


class SongTagRow(TypedDict, total=False):
    """One tag value attached to a song (descriptive or encoded token)."""

    id: str
    tenant_id: str | None
    song_id: str
    tag: str


class SongKeyRow(TypedDict, total=False):
    """A singer's default key for a song."""

    id: str
    tenant_id: str | None
    song_id: str
    singer_name: str
    default_key: str


class GigRow(TypedDict, total=False):
    """A gig (event)."""

    id: str
    tenant_id: str | None
    gig_name: str
    gig_date: str
    venue_address: str | None
    deleted_at: str | None


class GigSongRow(TypedDict, total=False):
    """Ordered membership of a song in a gig."""

    id: str
    tenant_id: str | None
    gig_id: str
    song_id: str
    sort_order: int


class GigSingerKeyRow(TypedDict, total=False):
    """A singer's key for one song at one gig."""

    id: str
    tenant_id: str | None
    gig_id: str
    song_id: str
    singer_name: str
    gig_key: str


class SpecialRequestRow(TypedDict, total=False):
    """A gig-scoped special request (first dance, anniversary…)."""

    id: str
    tenant_id: str | None
    gig_id: str
    request_type: str
    song_title: str
    song_artist: str | None
    song_id: str | None
    singers: list[str]
    song_key: str | None
    note: str | None
    dj_only: bool
    external_audio_url: str | None


class DocumentRow(TypedDict, total=False):
    """A chart, lyric sheet or lead sheet attached to a song."""

    id: str
    tenant_id: str | None
    song_id: str
    doc_type: str
    instrument: str
    title: str
    file_url: str | None
    content: str | None


class MusicianRow(TypedDict, total=False):
    """A rostered musician."""

    id: str
    tenant_id: str | None
    name: str
    roster: str
    email: str | None
    phone: str | None
    instruments: list[str]
    singer: str | None
    deleted_at: str | None


class GigMusicianRow(TypedDict, total=False):
    """A musician's assignment to a gig."""

    id: str
    tenant_id: str | None
    gig_id: str
    musician_id: str
    status: str
    note: str | None


class NowPlayingRow(TypedDict, total=False):
    """The song currently queued at a gig."""

    gig_id: str
    tenant_id: str | None
    song_id: str | None
    updated_at: str


class PlayedSongRow(TypedDict, total=False):
    """A song that was actually played at a gig."""

    id: str
    tenant_id: str | None
    gig_id: str
    song_id: str
    played_at: str
