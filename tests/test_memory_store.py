"""Tests for the in-process collection store and the shared match helpers."""
from __future__ import annotations

import pytest

from setlist.contracts.row_types import Collection
from setlist.errors import BackendError
from setlist.services.collection_store import row_matches, sort_rows
from setlist.services.memory_store import MemoryCollectionStore


class TestMatchHelpers:
    def test_none_means_is_null(self) -> None:
        assert row_matches({"deleted_at": None}, {"deleted_at": None})
        assert row_matches({}, {"deleted_at": None})
        assert not row_matches({"deleted_at": "2026-01-01"}, {"deleted_at": None})

    def test_empty_match_matches_everything(self) -> None:
        assert row_matches({"a": 1}, None)
        assert row_matches({"a": 1}, {})

    def test_sort_puts_nulls_last(self) -> None:
        rows = [{"o": 2}, {"o": None}, {"o": 0}]
        assert [r["o"] for r in sort_rows(rows, "o")] == [0, 2, None]


class TestMemoryStore:
    @pytest.mark.asyncio
    async def test_insert_assigns_ids_and_copies(self) -> None:
        store = MemoryCollectionStore()
        row = {"song_id": "s", "tag": "Dinner"}
        stored = await store.insert(Collection.SONG_TAGS, [row])
        assert stored[0]["id"]
        assert "id" not in row
        stored[0]["tag"] = "mutated"
        assert store.rows(Collection.SONG_TAGS)[0]["tag"] == "Dinner"

    @pytest.mark.asyncio
    async def test_select_filters_and_orders(self) -> None:
        store = MemoryCollectionStore()
        await store.insert(Collection.GIG_SONGS, [
            {"gig_id": "g", "song_id": "b", "sort_order": 1},
            {"gig_id": "g", "song_id": "a", "sort_order": 0},
            {"gig_id": "h", "song_id": "c", "sort_order": 0},
        ])
        rows = await store.select(Collection.GIG_SONGS, {"gig_id": "g"}, order_by="sort_order")
        assert [r["song_id"] for r in rows] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_update_and_delete_return_counts(self) -> None:
        store = MemoryCollectionStore()
        await store.insert(Collection.SONG_TAGS, [
            {"song_id": "s", "tag": "Dinner"},
            {"song_id": "s", "tag": "Dance"},
        ])
        assert await store.update(Collection.SONG_TAGS, {"tag": "Latin"}, {"tag": "Dance"}) == 1
        assert await store.delete(Collection.SONG_TAGS, {"song_id": "s"}) == 2
        assert await store.delete(Collection.SONG_TAGS, {"song_id": "s"}) == 0

    @pytest.mark.asyncio
    async def test_upsert_by_natural_key(self) -> None:
        store = MemoryCollectionStore()
        await store.upsert(Collection.NOW_PLAYING, {"gig_id": "g", "song_id": "a"}, ["gig_id"])
        await store.upsert(Collection.NOW_PLAYING, {"gig_id": "g", "song_id": "b"}, ["gig_id"])
        rows = store.rows(Collection.NOW_PLAYING)
        assert rows == [{"gig_id": "g", "song_id": "b"}]

    @pytest.mark.asyncio
    async def test_writes_publish_only_on_change(self) -> None:
        store = MemoryCollectionStore()
        queue = store.subscribe([Collection.SONG_TAGS])
        await store.delete(Collection.SONG_TAGS, {"song_id": "missing"})
        assert queue.empty()
        await store.insert(Collection.SONG_TAGS, [{"song_id": "s", "tag": "Dinner"}])
        notice = queue.get_nowait()
        assert notice is not None and notice.collection == Collection.SONG_TAGS

    @pytest.mark.asyncio
    async def test_closed_store_raises_backend_error(self) -> None:
        store = MemoryCollectionStore()
        queue = store.subscribe([Collection.SONGS])
        await store.close()
        assert queue.get_nowait() is None
        with pytest.raises(BackendError):
            await store.select(Collection.SONGS)
