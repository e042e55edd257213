"""
Tests for the REST collection store.

Every HTTP exchange goes through ``httpx.MockTransport``; the handler
records requests so tests can assert on the wire format.
"""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from setlist.contracts.row_types import Collection
from setlist.core.mutation_store import OptimisticStore
from setlist.errors import BackendError
from setlist.models.domain import Role
from setlist.services.reconciler import SyncReconciler
from setlist.services.rest_store import RestCollectionStore, build_filters, parse_event_line


class _Recorder:
    def __init__(self, responder=None) -> None:
        self.requests: list[httpx.Request] = []
        self._responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._responder is not None:
            return self._responder(request)
        if request.method == "GET":
            return httpx.Response(200, json=[{"id": "s1", "title": "September"}])
        body = json.loads(request.content or b"null")
        return httpx.Response(201, json=body if isinstance(body, list) else [{"id": "x"}])


def _store(recorder: _Recorder, **kwargs) -> RestCollectionStore:
    return RestCollectionStore(
        "https://db.example.test",
        api_key="secret-key",
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )


class TestFilters:
    def test_builds_postgrest_operators(self) -> None:
        assert build_filters({"id": "a", "deleted_at": None, "dj_only": True}) == {
            "id": "eq.a",
            "deleted_at": "is.null",
            "dj_only": "eq.true",
        }

    def test_empty_match(self) -> None:
        assert build_filters(None) == {}


class TestParseEventLine:
    def test_data_line_names_collection(self) -> None:
        line = 'data: {"table": "SetlistGigSongs", "type": "DELETE"}'
        assert parse_event_line(line) == Collection.GIG_SONGS

    @pytest.mark.parametrize("line", [
        "",
        ": keep-alive",
        "event: change",
        "data:",
        "data: not json",
        'data: ["SetlistSongs"]',
        'data: {"table": "SomethingElse"}',
    ])
    def test_other_lines_ignored(self, line: str) -> None:
        assert parse_event_line(line) is None


class TestRestCrud:
    @pytest.mark.asyncio
    async def test_select_sends_filters_order_and_auth(self) -> None:
        recorder = _Recorder()
        store = _store(recorder)
        rows = await store.select(Collection.SONGS, {"deleted_at": None}, order_by="title")
        await store.close()

        assert rows == [{"id": "s1", "title": "September"}]
        request = recorder.requests[0]
        assert request.url.path == "/rest/v1/SetlistSongs"
        assert request.url.params["deleted_at"] == "is.null"
        assert request.url.params["order"] == "title.asc.nullslast"
        assert request.headers["apikey"] == "secret-key"
        assert request.headers["Authorization"] == "Bearer secret-key"

    @pytest.mark.asyncio
    async def test_insert_posts_rows_with_representation(self) -> None:
        recorder = _Recorder()
        store = _store(recorder)
        stored = await store.insert(Collection.SONG_TAGS, [{"song_id": "s", "tag": "Dinner"}])
        await store.close()

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.headers["Prefer"] == "return=representation"
        assert json.loads(request.content) == [{"song_id": "s", "tag": "Dinner"}]
        assert stored == [{"song_id": "s", "tag": "Dinner"}]

    @pytest.mark.asyncio
    async def test_insert_nothing_makes_no_request(self) -> None:
        recorder = _Recorder()
        store = _store(recorder)
        assert await store.insert(Collection.SONG_TAGS, []) == []
        await store.close()
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_upsert_merges_duplicates(self) -> None:
        recorder = _Recorder()
        store = _store(recorder)
        await store.upsert(Collection.NOW_PLAYING, {"gig_id": "g", "song_id": "s"}, ["gig_id"])
        await store.close()

        request = recorder.requests[0]
        assert request.url.params["on_conflict"] == "gig_id"
        assert "resolution=merge-duplicates" in request.headers["Prefer"]

    @pytest.mark.asyncio
    async def test_delete_counts_returned_rows(self) -> None:
        recorder = _Recorder(lambda r: httpx.Response(200, json=[{"id": "a"}, {"id": "b"}]))
        store = _store(recorder)
        assert await store.delete(Collection.SONG_TAGS, {"song_id": "s"}) == 2
        await store.close()
        assert recorder.requests[0].method == "DELETE"
        assert recorder.requests[0].url.params["song_id"] == "eq.s"

    @pytest.mark.asyncio
    async def test_writes_do_not_publish_locally(self) -> None:
        recorder = _Recorder()
        store = _store(recorder)
        queue = store.feed.subscribe([Collection.SONG_TAGS])
        await store.insert(Collection.SONG_TAGS, [{"song_id": "s", "tag": "Dinner"}])
        assert queue.empty()
        await store.close()


class TestRestErrors:
    @pytest.mark.asyncio
    async def test_http_error_status_raises_backend_error(self) -> None:
        store = _store(_Recorder(lambda r: httpx.Response(500, text="boom")))
        with pytest.raises(BackendError) as exc_info:
            await store.select(Collection.SONGS)
        await store.close()
        assert "HTTP 500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_raises_backend_error(self) -> None:
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        store = _store(_Recorder(_refuse))
        with pytest.raises(BackendError):
            await store.update(Collection.SONGS, {"title": "x"}, {"id": "s"})
        await store.close()

    @pytest.mark.asyncio
    async def test_non_json_body_raises_backend_error(self) -> None:
        store = _store(_Recorder(lambda r: httpx.Response(200, text="<html>bad gateway</html>")))
        with pytest.raises(BackendError) as exc_info:
            await store.select(Collection.SONGS)
        await store.close()
        assert "invalid JSON" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_json_body_is_a_failed_reload(self) -> None:
        store = _store(_Recorder(lambda r: httpx.Response(200, text="<html>bad gateway</html>")))
        mutations = OptimisticStore(role=Role.ADMIN)
        assert await SyncReconciler(store, mutations).reload() is False
        await store.close()
        assert "Reload failed" in (mutations.banner.current or "")


class TestRealtime:
    @pytest.mark.asyncio
    async def test_stream_events_become_notices(self) -> None:
        def _respond(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/realtime/v1/changes":
                body = (
                    ": keep-alive\n\n"
                    'data: {"table": "SetlistSongTags", "type": "INSERT"}\n\n'
                )
                return httpx.Response(200, text=body, headers={"Content-Type": "text/event-stream"})
            return httpx.Response(200, json=[])

        recorder = _Recorder(_respond)
        store = _store(recorder, reconnect_delay=60.0)
        queue = store.subscribe([Collection.SONG_TAGS, Collection.SONGS])
        notice = await asyncio.wait_for(queue.get(), timeout=2.0)
        assert notice is not None and notice.collection == Collection.SONG_TAGS

        stream_request = next(r for r in recorder.requests if r.url.path == "/realtime/v1/changes")
        assert stream_request.url.params["tables"] == "SetlistSongTags,SetlistSongs"
        await store.close()
        assert queue.get_nowait() is None
