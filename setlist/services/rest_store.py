"""REST Backend Collection Store.

Talks to a PostgREST-style gateway:

    GET    /rest/v1/<table>?col=eq.value&order=col.asc.nullslast
    POST   /rest/v1/<table>                       (insert)
    POST   /rest/v1/<table>?on_conflict=a,b       (upsert, merge-duplicates)
    PATCH  /rest/v1/<table>?col=eq.value          (update)
    DELETE /rest/v1/<table>?col=is.null           (delete)

Change notices arrive on a server-sent events stream at ``realtime_path``;
each ``data:`` line is a JSON object naming the changed table::

    data: {"table": "SetlistGigSongs", "type": "DELETE"}

The row payload, when present, is ignored.  The gateway echoes this
client's own writes on the stream, so writes do not publish locally.

The API key is sent as both ``apikey`` and ``Authorization: Bearer`` and is
never written to logs.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable, Sequence

import httpx

from setlist.contracts.row_types import Collection, Row
from setlist.errors import BackendError
from setlist.services.change_feed import ChangeFeed, NoticeQueue
from setlist.services.collection_store import CollectionStore, Match

logger = logging.getLogger(__name__)

_REST_PREFIX = "/rest/v1"
_TABLES: dict[str, Collection] = {c.value: c for c in Collection}


def _filter_value(value: object) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def build_filters(match: Match | None) -> dict[str, str]:
    """PostgREST query parameters for an exact-match predicate."""
    return {column: _filter_value(value) for column, value in (match or {}).items()}


def parse_event_line(line: str) -> Collection | None:
    """Map one SSE line to the collection it names, or None."""
    if not line.startswith("data:"):
        return None
    payload = line[5:].strip()
    if not payload:
        return None
    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("Ignoring non-JSON realtime line: %s", payload[:120])
        return None
    if not isinstance(event, dict):
        return None
    return _TABLES.get(str(event.get("table", "")))


class RestCollectionStore(CollectionStore):
    """Collection store over a PostgREST-style HTTP gateway."""

    name = "rest"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        realtime_path: str = "/realtime/v1/changes",
        reconnect_delay: float = 2.0,
        feed: ChangeFeed | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(feed)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._realtime_path = realtime_path
        self._reconnect_delay = reconnect_delay
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._listener: asyncio.Task[None] | None = None
        self._tracked: set[Collection] = set()

    # ------------------------------------------------------------------
    # Client
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
            logger.debug("✅ REST auth headers set (Bearer ***)")
        return headers

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers(),
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        collection: Collection,
        operation: str,
        *,
        params: dict[str, str] | None = None,
        json_body: object = None,
        prefer: str | None = None,
    ) -> list[Row]:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self.client.request(
                method,
                f"{_REST_PREFIX}/{collection.value}",
                params=params,
                json=json_body,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:200]
            logger.error(
                "❌ %s %s → HTTP %d: %s",
                operation, collection.value, exc.response.status_code, detail,
            )
            raise BackendError(
                collection.value, operation, f"HTTP {exc.response.status_code}: {detail}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("❌ %s %s failed: %s", operation, collection.value, exc)
            raise BackendError(collection.value, operation, str(exc)) from exc

        if not response.content:
            return []
        try:
            body = response.json()
        except ValueError as exc:
            logger.error("❌ %s %s returned a non-JSON body", operation, collection.value)
            raise BackendError(
                collection.value, operation, f"invalid JSON response: {response.text[:200]}"
            ) from exc
        if isinstance(body, dict):
            return [body]
        return list(body)

    # ------------------------------------------------------------------
    # CollectionStore
    # ------------------------------------------------------------------

    async def select(
        self,
        collection: Collection,
        match: Match | None = None,
        order_by: str | None = None,
    ) -> list[Row]:
        params = {"select": "*", **build_filters(match)}
        if order_by:
            params["order"] = f"{order_by}.asc.nullslast"
        return await self._request("GET", collection, "select", params=params)

    async def insert(self, collection: Collection, rows: Sequence[Row]) -> list[Row]:
        if not rows:
            return []
        return await self._request(
            "POST", collection, "insert",
            json_body=list(rows),
            prefer="return=representation",
        )

    async def update(self, collection: Collection, values: Row, match: Match) -> int:
        updated = await self._request(
            "PATCH", collection, "update",
            params=build_filters(match),
            json_body=values,
            prefer="return=representation",
        )
        return len(updated)

    async def upsert(
        self,
        collection: Collection,
        row: Row,
        on_conflict: Sequence[str],
    ) -> Row:
        stored = await self._request(
            "POST", collection, "upsert",
            params={"on_conflict": ",".join(on_conflict)},
            json_body=[row],
            prefer="resolution=merge-duplicates,return=representation",
        )
        return stored[0] if stored else dict(row)

    async def delete(self, collection: Collection, match: Match) -> int:
        deleted = await self._request(
            "DELETE", collection, "delete",
            params=build_filters(match),
            prefer="return=representation",
        )
        return len(deleted)

    def _published(self, collection: Collection, changed: int) -> None:
        # Echoed back by the gateway on the realtime stream.
        return None

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    def subscribe(self, collections: Iterable[Collection]) -> NoticeQueue:
        """Subscribe and make sure the realtime listener is running."""
        tracked = list(collections)
        queue = super().subscribe(tracked)
        self._tracked.update(tracked)
        if self._listener is None or self._listener.done():
            self._listener = asyncio.create_task(self._listen())
        return queue

    async def _listen(self) -> None:
        """Consume the SSE stream, reconnecting after failures until closed."""
        while True:
            try:
                await self._consume_stream()
            except asyncio.CancelledError:
                raise
            except httpx.HTTPError as exc:
                logger.warning("⚠️ Realtime stream dropped: %s", exc)
            await asyncio.sleep(self._reconnect_delay)

    async def _consume_stream(self) -> None:
        params = {"tables": ",".join(sorted(c.value for c in self._tracked))}
        async with self.client.stream(
            "GET",
            self._realtime_path,
            params=params,
            headers={"Accept": "text/event-stream"},
            timeout=None,
        ) as response:
            response.raise_for_status()
            logger.info("✅ Realtime stream connected (%d tables)", len(self._tracked))
            async for line in response.aiter_lines():
                collection = parse_event_line(line)
                if collection is not None:
                    self.feed.publish(collection)

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        await super().close()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
