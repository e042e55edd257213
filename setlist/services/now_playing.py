"""
Now-playing pointer.

One value per gig: the song currently queued, or none.  Writes are
optimistic (snapshot first, then a fire-and-forget upsert/delete).  Other
clients see the value by polling on a fixed interval, not through the
change feed.

A song already queued once at a gig is locked; queueing it again raises
``RequeueConfirmationRequired`` unless the caller passes ``confirm=True``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from setlist.contracts.row_types import Collection, Row
from setlist.core.mutation_store import OptimisticStore
from setlist.errors import BackendError, RequeueConfirmationRequired, UnknownEntityError
from setlist.services.collection_store import CollectionStore
from setlist.services.local_state import LocalStateCache
from setlist.services.write_dispatch import BackendWriter

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class NowPlayingPointer:
    """Queue, clear and log the per-gig now-playing song."""

    def __init__(
        self,
        store: CollectionStore,
        mutations: OptimisticStore,
        writer: BackendWriter,
        local: LocalStateCache | None = None,
        tenant_id: str | None = None,
    ) -> None:
        self._store = store
        self._mutations = mutations
        self._writer = writer
        self._local = local
        self._tenant_id = tenant_id

    def current(self, gig_id: str) -> str | None:
        return self._mutations.state.now_playing.get(gig_id)

    def is_locked(self, gig_id: str, song_id: str) -> bool:
        return self._local is not None and self._local.is_locked(gig_id, song_id)

    def _row(self, **values: object) -> Row:
        row: Row = dict(values)
        if self._tenant_id:
            row["tenant_id"] = self._tenant_id
        return row

    def queue(self, gig_id: str, song_id: str, confirm: bool = False) -> bool:
        """
        Make *song_id* the gig's now-playing song.

        Returns False for a non-admin role.  Raises
        RequeueConfirmationRequired for a locked song without *confirm*.
        """
        if not self._mutations.is_authorized:
            return False
        state = self._mutations.state
        if state.gig(gig_id) is None:
            raise UnknownEntityError("gig", gig_id)
        if state.song(song_id) is None:
            raise UnknownEntityError("song", song_id)
        if self.is_locked(gig_id, song_id) and not confirm:
            raise RequeueConfirmationRequired(gig_id, song_id)

        self._mutations.set_now_playing(gig_id, song_id)
        if self._local is not None:
            self._local.lock_song(gig_id, song_id)
        self._writer.submit(
            "Set now playing",
            self._store.upsert(
                Collection.NOW_PLAYING,
                self._row(gig_id=gig_id, song_id=song_id, updated_at=_now_iso()),
                on_conflict=["gig_id"],
            ),
        )
        logger.info("Now playing at %s: %s", gig_id, song_id)
        return True

    def clear(self, gig_id: str, log_played: bool = True) -> bool:
        """Clear the gig's pointer; the cleared song goes to the played log."""
        if not self._mutations.is_authorized:
            return False
        previous = self.current(gig_id)
        self._mutations.set_now_playing(gig_id, None)
        self._writer.submit(
            "Clear now playing",
            self._store.delete(Collection.NOW_PLAYING, self._row(gig_id=gig_id)),
        )
        if previous and log_played:
            self.log_played(gig_id, previous)
        return True

    def log_played(self, gig_id: str, song_id: str) -> None:
        """Append to the played log.  Any role may log."""
        self._writer.submit(
            "Log played song",
            self._store.insert(
                Collection.PLAYED_SONGS,
                [self._row(gig_id=gig_id, song_id=song_id, played_at=_now_iso())],
            ),
        )


class NowPlayingPoller:
    """Periodically reads every gig's pointer into the snapshot."""

    def __init__(
        self,
        store: CollectionStore,
        mutations: OptimisticStore,
        interval: float = 5.0,
        tenant_id: str | None = None,
    ) -> None:
        self._store = store
        self._mutations = mutations
        self._interval = interval
        self._tenant_id = tenant_id
        self._task: asyncio.Task[None] | None = None
        self.polls = 0

    async def poll_once(self) -> dict[str, str | None] | None:
        """Read every pointer; returns the map, or None when the read failed."""
        match = {"tenant_id": self._tenant_id} if self._tenant_id else None
        try:
            rows = await self._store.select(Collection.NOW_PLAYING, match)
        except BackendError as exc:
            logger.warning("⚠️ Now-playing poll failed: %s", exc)
            self._mutations.banner.report(str(exc))
            return None
        pointers = {
            str(row["gig_id"]): (str(row["song_id"]) if row.get("song_id") else None)
            for row in rows
        }
        self._mutations.merge_now_playing(pointers)
        self.polls += 1
        return pointers

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="now-playing-poller")
            logger.info("Polling now-playing every %.1fs", self._interval)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
