"""Pytest configuration and fixtures."""
from __future__ import annotations

import logging

import pytest
import pytest_asyncio

from setlist.contracts.row_types import Collection, Row
from setlist.models.domain import Role
from setlist.services.local_state import LocalStateCache
from setlist.services.memory_store import MemoryCollectionStore
from setlist.services.session import SetlistSession


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


GIG_ID = "gig-1"
OTHER_GIG_ID = "gig-2"
SONG_ID = "song-1"
OTHER_SONG_ID = "song-2"


def seed_rows() -> dict[Collection, list[Row]]:
    """A small catalog: two songs, two gigs, one singer binding."""
    return {
        Collection.SONGS: [
            {"id": SONG_ID, "title": "September", "artist": "Earth, Wind & Fire", "original_key": "A"},
            {"id": OTHER_SONG_ID, "title": "Besame Mucho", "artist": "Consuelo Velázquez", "original_key": "Dm"},
        ],
        Collection.SONG_TAGS: [
            {"id": "tag-1", "song_id": SONG_ID, "tag": "Dinner"},
            {"id": "tag-2", "song_id": OTHER_SONG_ID, "tag": "Latin"},
        ],
        Collection.SONG_KEYS: [
            {"id": "key-1", "song_id": SONG_ID, "singer_name": "Maya", "default_key": "C"},
        ],
        Collection.GIGS: [
            {"id": GIG_ID, "gig_name": "Smith Wedding", "gig_date": "2026-06-01", "venue_address": "Harbor Hall"},
            {"id": OTHER_GIG_ID, "gig_name": "Jones Gala", "gig_date": "2026-07-12"},
        ],
        Collection.GIG_SONGS: [
            {"id": "gs-1", "gig_id": GIG_ID, "song_id": SONG_ID, "sort_order": 0},
            {"id": "gs-2", "gig_id": GIG_ID, "song_id": OTHER_SONG_ID, "sort_order": 1},
            {"id": "gs-3", "gig_id": OTHER_GIG_ID, "song_id": SONG_ID, "sort_order": 0},
        ],
        Collection.MUSICIANS: [
            {"id": "mus-1", "name": "Maya", "roster": "core", "instruments": ["Vocals"], "singer": "female"},
        ],
    }


@pytest.fixture
def memory_store() -> MemoryCollectionStore:
    return MemoryCollectionStore(seed=seed_rows())


@pytest.fixture
def local_cache(tmp_path) -> LocalStateCache:
    return LocalStateCache(tmp_path / "state.json")


@pytest_asyncio.fixture
async def admin_session(memory_store, local_cache):
    """An admin session over the seeded memory store, already reloaded."""
    session = SetlistSession(memory_store, role=Role.ADMIN, local=local_cache)
    await session.start()
    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture
async def viewer_session(memory_store, local_cache):
    """A read-only session over the seeded memory store."""
    session = SetlistSession(memory_store, role=Role.USER, local=local_cache)
    await session.start()
    try:
        yield session
    finally:
        await session.close()
