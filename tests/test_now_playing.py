"""Tests for the now-playing pointer and its poller."""
from __future__ import annotations

import pytest

from setlist.contracts.row_types import Collection
from setlist.errors import BackendError, RequeueConfirmationRequired, UnknownEntityError
from setlist.services.session import SetlistSession

from tests.conftest import GIG_ID, OTHER_SONG_ID, SONG_ID


class TestQueue:
    @pytest.mark.asyncio
    async def test_queue_updates_snapshot_then_backend(self, admin_session: SetlistSession, memory_store) -> None:
        assert admin_session.now_playing.queue(GIG_ID, SONG_ID) is True
        assert admin_session.state.now_playing[GIG_ID] == SONG_ID
        assert admin_session.mutations.history == ()

        await admin_session.writer.drain()
        rows = memory_store.rows(Collection.NOW_PLAYING)
        assert [(r["gig_id"], r["song_id"]) for r in rows] == [(GIG_ID, SONG_ID)]

    @pytest.mark.asyncio
    async def test_requeue_of_locked_song_needs_confirmation(self, admin_session: SetlistSession) -> None:
        admin_session.now_playing.queue(GIG_ID, SONG_ID)
        admin_session.now_playing.queue(GIG_ID, OTHER_SONG_ID)
        with pytest.raises(RequeueConfirmationRequired):
            admin_session.now_playing.queue(GIG_ID, SONG_ID)
        assert admin_session.state.now_playing[GIG_ID] == OTHER_SONG_ID

        assert admin_session.now_playing.queue(GIG_ID, SONG_ID, confirm=True) is True
        assert admin_session.state.now_playing[GIG_ID] == SONG_ID

    @pytest.mark.asyncio
    async def test_viewer_cannot_queue(self, viewer_session: SetlistSession) -> None:
        assert viewer_session.now_playing.queue(GIG_ID, SONG_ID) is False
        assert GIG_ID not in viewer_session.state.now_playing

    @pytest.mark.asyncio
    async def test_unknown_song_rejected(self, admin_session: SetlistSession) -> None:
        with pytest.raises(UnknownEntityError):
            admin_session.now_playing.queue(GIG_ID, "missing")


class TestClear:
    @pytest.mark.asyncio
    async def test_clear_deletes_pointer_and_logs_played(self, admin_session: SetlistSession, memory_store) -> None:
        admin_session.now_playing.queue(GIG_ID, SONG_ID)
        await admin_session.writer.drain()
        assert admin_session.now_playing.clear(GIG_ID) is True
        assert admin_session.state.now_playing[GIG_ID] is None

        await admin_session.writer.drain()
        assert memory_store.rows(Collection.NOW_PLAYING) == []
        played = memory_store.rows(Collection.PLAYED_SONGS)
        assert [(r["gig_id"], r["song_id"]) for r in played] == [(GIG_ID, SONG_ID)]


class TestPoller:
    @pytest.mark.asyncio
    async def test_poll_merges_remote_pointer(self, viewer_session: SetlistSession, memory_store) -> None:
        await memory_store.upsert(Collection.NOW_PLAYING, {"gig_id": GIG_ID, "song_id": SONG_ID}, ["gig_id"])
        pointers = await viewer_session.poller.poll_once()
        assert pointers == {GIG_ID: SONG_ID}
        assert viewer_session.state.now_playing == {GIG_ID: SONG_ID}
        assert viewer_session.poller.polls == 1

    @pytest.mark.asyncio
    async def test_poll_failure_reports_and_keeps_map(self, viewer_session: SetlistSession, memory_store, monkeypatch) -> None:
        async def _fail(*args, **kwargs):
            raise BackendError(Collection.NOW_PLAYING.value, "select", "timeout")

        monkeypatch.setattr(memory_store, "select", _fail)
        assert await viewer_session.poller.poll_once() is None
        assert viewer_session.error is not None
        assert viewer_session.poller.polls == 0
