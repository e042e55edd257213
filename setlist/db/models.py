"""
SQLAlchemy ORM models for Setlist Connect.

One table per backend collection; ``__tablename__`` is the collection's wire
name (see ``setlist.contracts.row_types.Collection``).  Timestamps are kept
as ISO-8601 strings so rows look identical across every store.

Tables:
- SetlistSongs / SetlistMusicians / SetlistGigs: soft-deleted (deleted_at)
- SetlistSongTags: descriptive tags and encoded section tokens
- SetlistSongKeys / SetlistGigSingerKeys: default and per-gig singer keys
- SetlistGigSongs: ordered gig membership
- SetlistGigNowPlaying: one row per gig
- SetlistPlayedSongs: append-only played log
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from setlist.db.database import Base


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    """Current UTC timestamp as ISO-8601."""
    return datetime.now(timezone.utc).isoformat()


class Song(Base):
    """A catalogued song (shared across gigs)."""
    __tablename__ = "SetlistSongs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    artist: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    audio_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    original_key: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    deleted_at: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)


class SongTag(Base):
    """One tag value on a song: a descriptive tag or an encoded section token."""
    __tablename__ = "SetlistSongTags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    song_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    tag: Mapped[str] = mapped_column(Text, nullable=False)


class SongKey(Base):
    """A singer's default key for a song."""
    __tablename__ = "SetlistSongKeys"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    song_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    singer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    default_key: Mapped[str] = mapped_column(String(16), nullable=False)


class Gig(Base):
    """A gig (event)."""
    __tablename__ = "SetlistGigs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    gig_name: Mapped[str] = mapped_column(String(255), nullable=False)
    gig_date: Mapped[str] = mapped_column(String(40), nullable=False)
    venue_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)


class GigSong(Base):
    """Ordered membership of a song in a gig."""
    __tablename__ = "SetlistGigSongs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    gig_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    song_id: Mapped[str] = mapped_column(String(36), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class GigSingerKey(Base):
    """A singer's key for one song at one gig."""
    __tablename__ = "SetlistGigSingerKeys"
    __table_args__ = (
        Index("ix_gig_singer_keys_pair", "gig_id", "song_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    gig_id: Mapped[str] = mapped_column(String(36), nullable=False)
    song_id: Mapped[str] = mapped_column(String(36), nullable=False)
    singer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    gig_key: Mapped[str] = mapped_column(String(16), nullable=False)


class SpecialRequest(Base):
    """A gig-scoped special request."""
    __tablename__ = "SetlistSpecialRequests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    gig_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    request_type: Mapped[str] = mapped_column(String(64), nullable=False)
    song_title: Mapped[str] = mapped_column(String(255), nullable=False)
    song_artist: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    song_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    singers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    song_key: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dj_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external_audio_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Document(Base):
    """A chart, lyric sheet or lead sheet for a song."""
    __tablename__ = "SetlistDocuments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    song_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    doc_type: Mapped[str] = mapped_column(String(32), nullable=False)
    instrument: Mapped[str] = mapped_column(String(64), nullable=False, default="All")
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    file_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Musician(Base):
    """A rostered musician."""
    __tablename__ = "SetlistMusicians"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    roster: Mapped[str] = mapped_column(String(16), nullable=False, default="core")
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    instruments: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    singer: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    deleted_at: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)


class GigMusician(Base):
    """A musician's assignment to a gig."""
    __tablename__ = "SetlistGigMusicians"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    gig_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    musician_id: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class NowPlaying(Base):
    """The song currently queued at a gig (one row per gig)."""
    __tablename__ = "SetlistGigNowPlaying"

    gig_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    song_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    updated_at: Mapped[str] = mapped_column(String(40), nullable=False, default=utc_now_iso)


class PlayedSong(Base):
    """A song that was played at a gig."""
    __tablename__ = "SetlistPlayedSongs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    gig_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    song_id: Mapped[str] = mapped_column(String(36), nullable=False)
    played_at: Mapped[str] = mapped_column(String(40), nullable=False, default=utc_now_iso)
