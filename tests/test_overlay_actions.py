"""
Tests for gig-scoped overlay actions against the memory store.

Each test commits locally, drains the background writes, and where it
matters reloads from the store to check the persisted rows agree.
"""
from __future__ import annotations

import pytest

from setlist.contracts.row_types import Collection, Row
from setlist.core.overlay import effective_keys, effective_section, key_conflict
from setlist.core.section_codec import decode
from setlist.errors import BackendError, UnknownEntityError
from setlist.models.domain import Role
from setlist.services.memory_store import MemoryCollectionStore
from setlist.services.session import SetlistSession

from tests.conftest import GIG_ID, OTHER_GIG_ID, OTHER_SONG_ID, SONG_ID, seed_rows


def _tokens(store: MemoryCollectionStore) -> set[tuple[str, str, str]]:
    found = set()
    for row in store.rows(Collection.SONG_TAGS):
        token = decode(row["tag"])
        if token is not None:
            found.add((token.gig_id, row["song_id"], token.section))
    return found


async def _settle(session: SetlistSession) -> None:
    await session.writer.drain()
    await session.reconciler.reload()


class _FlakyStore(MemoryCollectionStore):
    """Fails the next N inserts into one collection."""

    def __init__(self, fail_collection: Collection, failures: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_collection = fail_collection
        self.failures = failures

    async def insert(self, collection: Collection, rows) -> list[Row]:
        if collection == self.fail_collection and self.failures > 0:
            self.failures -= 1
            raise BackendError(collection.value, "insert", "network down")
        return await super().insert(collection, rows)


class TestAssignSection:
    @pytest.mark.asyncio
    async def test_override_scoped_to_one_gig(self, admin_session: SetlistSession) -> None:
        assert admin_session.overlays.assign_section(GIG_ID, SONG_ID, "Dance Set 2") is True
        await _settle(admin_session)
        state = admin_session.state
        song = state.song(SONG_ID)
        assert effective_section(state, state.gig(GIG_ID), song) == "Dance Set 2"
        assert effective_section(state, state.gig(OTHER_GIG_ID), song) == "Dinner"
        assert song.tags == ("Dinner",)

    @pytest.mark.asyncio
    async def test_reassign_never_touches_other_tokens(self, admin_session: SetlistSession, memory_store) -> None:
        overlays = admin_session.overlays
        overlays.assign_section(GIG_ID, SONG_ID, "Dance")
        overlays.assign_section(OTHER_GIG_ID, SONG_ID, "Latin")
        overlays.assign_section(GIG_ID, OTHER_SONG_ID, "Dinner")
        await admin_session.writer.drain()

        overlays.assign_section(GIG_ID, SONG_ID, "Dance Set 2")
        await admin_session.writer.drain()
        assert _tokens(memory_store) == {
            (GIG_ID, SONG_ID, "Dance Set 2"),
            (OTHER_GIG_ID, SONG_ID, "Latin"),
            (GIG_ID, OTHER_SONG_ID, "Dinner"),
        }

    @pytest.mark.asyncio
    async def test_clear_section_removes_only_that_token(self, admin_session: SetlistSession, memory_store) -> None:
        admin_session.overlays.assign_section(GIG_ID, SONG_ID, "Latin")
        admin_session.overlays.assign_section(OTHER_GIG_ID, SONG_ID, "Latin")
        await admin_session.writer.drain()
        admin_session.overlays.clear_section(GIG_ID, SONG_ID)
        await _settle(admin_session)
        assert _tokens(memory_store) == {(OTHER_GIG_ID, SONG_ID, "Latin")}
        state = admin_session.state
        assert effective_section(state, state.gig(GIG_ID), state.song(SONG_ID)) == "Dinner"

    @pytest.mark.asyncio
    async def test_undo_is_local_only(self, admin_session: SetlistSession, memory_store) -> None:
        admin_session.overlays.assign_section(GIG_ID, SONG_ID, "Latin")
        admin_session.undo()
        assert admin_session.state.section_overrides == {}
        await _settle(admin_session)
        assert admin_session.state.section_overrides == {(GIG_ID, SONG_ID): "Latin"}

    @pytest.mark.asyncio
    async def test_viewer_is_rejected_without_writes(self, viewer_session: SetlistSession, memory_store) -> None:
        assert viewer_session.overlays.assign_section(GIG_ID, SONG_ID, "Latin") is False
        await viewer_session.writer.drain()
        assert _tokens(memory_store) == set()
        assert viewer_session.mutations.history == ()

    @pytest.mark.asyncio
    async def test_validation(self, admin_session: SetlistSession) -> None:
        with pytest.raises(ValueError):
            admin_session.overlays.assign_section(GIG_ID, SONG_ID, "   ")
        with pytest.raises(UnknownEntityError):
            admin_session.overlays.assign_section("missing", SONG_ID, "Latin")


class TestSingerKeys:
    @pytest.mark.asyncio
    async def test_override_at_one_gig(self, admin_session: SetlistSession) -> None:
        admin_session.overlays.assign_singer_key(GIG_ID, SONG_ID, "Maya", "D")
        await _settle(admin_session)
        state = admin_session.state
        song = state.song(SONG_ID)
        assert effective_keys(state.gig(GIG_ID), song)[0].key == "D"
        assert effective_keys(state.gig(OTHER_GIG_ID), song)[0].key == "C"

    @pytest.mark.asyncio
    async def test_new_singer_gets_a_binding(self, admin_session: SetlistSession, memory_store) -> None:
        admin_session.overlays.assign_singer_key(GIG_ID, SONG_ID, "Sam")
        await _settle(admin_session)
        binding = admin_session.state.song(SONG_ID).binding_for("Sam")
        assert binding is not None
        assert binding.default_key == "A"
        assert binding.gig_overrides == {GIG_ID: "A"}
        assert "Sam" in admin_session.state.singers_catalog

    @pytest.mark.asyncio
    async def test_reassign_replaces_row(self, admin_session: SetlistSession, memory_store) -> None:
        admin_session.overlays.assign_singer_key(GIG_ID, SONG_ID, "Maya", "D")
        admin_session.overlays.assign_singer_key(GIG_ID, SONG_ID, "Maya", "E")
        await admin_session.writer.drain()
        rows = memory_store.rows(Collection.GIG_SINGER_KEYS)
        assert [(r["singer_name"], r["gig_key"]) for r in rows] == [("Maya", "E")]


class TestResolveConflictingKey:
    async def _conflicted(self, session: SetlistSession) -> None:
        session.overlays.assign_singer_key(GIG_ID, SONG_ID, "Maya", "D")
        session.overlays.assign_singer_key(GIG_ID, SONG_ID, "Sam", "F")
        await _settle(session)

    @pytest.mark.asyncio
    async def test_detect_and_resolve(self, admin_session: SetlistSession) -> None:
        await self._conflicted(admin_session)
        conflicts = admin_session.overlays.detect_conflicts(GIG_ID)
        assert [c.song_id for c in conflicts] == [SONG_ID]

        admin_session.overlays.resolve_conflicting_key(GIG_ID, SONG_ID, "Eb")
        await _settle(admin_session)
        state = admin_session.state
        assert key_conflict(state.gig(GIG_ID), state.song(SONG_ID)) is None
        assert {k.key for k in effective_keys(state.gig(GIG_ID), state.song(SONG_ID))} == {"Eb"}
        assert admin_session.overlays.detect_conflicts(GIG_ID) == []

    @pytest.mark.asyncio
    async def test_partial_failure_converges_on_retry(self, local_cache) -> None:
        store = _FlakyStore(Collection.GIG_SINGER_KEYS, failures=0, seed=seed_rows())
        session = SetlistSession(store, role=Role.ADMIN, local=local_cache)
        await session.start()
        await self._conflicted(session)

        store.failures = 1
        session.overlays.resolve_conflicting_key(GIG_ID, SONG_ID, "Eb")
        await _settle(session)
        assert session.writer.failures == 1
        assert "Resolve key conflict" in (session.error or "")

        session.overlays.resolve_conflicting_key(GIG_ID, SONG_ID, "Eb")
        await _settle(session)
        song = session.state.song(SONG_ID)
        assert key_conflict(session.state.gig(GIG_ID), song) is None
        assert song.binding_for("Sam").key_for(GIG_ID) == "Eb"
        await session.close()


class TestImportSectionFromGig:
    @pytest.mark.asyncio
    async def test_copies_songs_overrides_and_keys(self, admin_session: SetlistSession, memory_store) -> None:
        overlays = admin_session.overlays
        overlays.assign_section(GIG_ID, OTHER_SONG_ID, "Dance Set 2")
        overlays.assign_singer_key(GIG_ID, OTHER_SONG_ID, "Maya", "E")
        await _settle(admin_session)

        copied = overlays.import_section_from_gig("Dance Set 2", GIG_ID, OTHER_GIG_ID)
        assert copied == [OTHER_SONG_ID]
        await _settle(admin_session)

        state = admin_session.state
        target = state.gig(OTHER_GIG_ID)
        assert target.song_ids == (SONG_ID, OTHER_SONG_ID)
        assert effective_section(state, target, state.song(OTHER_SONG_ID)) == "Dance Set 2"
        assert state.song(OTHER_SONG_ID).binding_for("Maya").key_for(OTHER_GIG_ID) == "E"

    @pytest.mark.asyncio
    async def test_nothing_matches(self, admin_session: SetlistSession) -> None:
        assert admin_session.overlays.import_section_from_gig("Ceremony", GIG_ID, OTHER_GIG_ID) == []
