"""
Sync Reconciler.

Subscribes to change notices for every tracked collection and answers each
one with a full reload: fetch every collection (tenant-scoped), rebuild the
snapshot with ``build_snapshot``, replace it in one step, return to IDLE.

Notices that arrive while a reload is in flight are coalesced into exactly
one follow-up reload.  There is no generation counter: a slow reload can
overwrite a local edit committed after its fetch started.
"""

from __future__ import annotations

import asyncio
import logging
import time

from pydantic import ValidationError

from setlist.contracts.row_types import (
    Collection,
    Row,
    SOFT_DELETED_COLLECTIONS,
    TRACKED_COLLECTIONS,
)
from setlist.core.mutation_store import OptimisticStore
from setlist.core.snapshot_builder import build_snapshot
from setlist.core.sync_state import SyncStatus, assert_transition, can_start_reload
from setlist.errors import BackendError
from setlist.services.change_feed import NoticeQueue
from setlist.services.collection_store import CollectionStore

logger = logging.getLogger(__name__)

_ORDER_BY: dict[Collection, str] = {
    Collection.GIG_SONGS: "sort_order",
}


class SyncReconciler:
    """Full-reload reconciler with an IDLE/RELOADING state machine."""

    def __init__(
        self,
        store: CollectionStore,
        mutations: OptimisticStore,
        tenant_id: str | None = None,
    ) -> None:
        self._store = store
        self._mutations = mutations
        self._tenant_id = tenant_id
        self._status = SyncStatus.IDLE
        self._pending = False
        self._queue: NoticeQueue | None = None
        self._task: asyncio.Task[None] | None = None
        self.reload_count = 0
        self.last_reload_at: float | None = None

    @property
    def status(self) -> SyncStatus:
        return self._status

    def _transition(self, to_state: SyncStatus) -> None:
        assert_transition(self._status, to_state)
        logger.debug("Reconciler %s → %s", self._status.value, to_state.value)
        self._status = to_state

    # ------------------------------------------------------------------
    # Reload
    # ------------------------------------------------------------------

    def _match_for(self, collection: Collection) -> dict[str, object] | None:
        match: dict[str, object] = {}
        if self._tenant_id:
            match["tenant_id"] = self._tenant_id
        if collection in SOFT_DELETED_COLLECTIONS:
            match["deleted_at"] = None
        return match or None

    async def fetch_all(self) -> dict[Collection, list[Row]]:
        """Fetch every tracked collection concurrently; the first failure raises."""
        results = await asyncio.gather(*(
            self._store.select(c, self._match_for(c), _ORDER_BY.get(c))
            for c in TRACKED_COLLECTIONS
        ))
        return dict(zip(TRACKED_COLLECTIONS, results))

    async def reload(self) -> bool:
        """
        Run a full reload now.

        Returns True when the snapshot was replaced.  Called while another
        reload is in flight, it only schedules one follow-up reload and
        returns False.
        """
        if not can_start_reload(self._status):
            self._pending = True
            return False
        while True:
            self._pending = False
            ok = await self._reload_once()
            if not self._pending:
                return ok

    async def _reload_once(self) -> bool:
        self._transition(SyncStatus.RELOADING)
        started = time.monotonic()
        try:
            rows = await self.fetch_all()
            snapshot = build_snapshot(rows)
        except (BackendError, ValidationError) as exc:
            logger.error("❌ Reload failed: %s", exc)
            self._mutations.banner.report(f"Reload failed: {exc}")
            return False
        finally:
            self._transition(SyncStatus.IDLE)
        self._mutations.replace_snapshot(snapshot)
        self.reload_count += 1
        self.last_reload_at = time.time()
        logger.info(
            "✅ Reloaded %d songs, %d gigs in %.0fms",
            len(snapshot.songs),
            len(snapshot.gigs),
            (time.monotonic() - started) * 1000,
        )
        return True

    # ------------------------------------------------------------------
    # Notice loop
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to every tracked collection and start the notice loop."""
        if self._task is not None:
            return
        self._queue = self._store.subscribe(TRACKED_COLLECTIONS)
        self._task = asyncio.create_task(self._run(self._queue), name="sync-reconciler")
        logger.info("Reconciler listening on %d collections", len(TRACKED_COLLECTIONS))

    async def _run(self, queue: NoticeQueue) -> None:
        while True:
            notice = await queue.get()
            if notice is None:
                logger.info("Change feed closed; reconciler stopping")
                return
            logger.debug("Notice %s seq=%d", notice.collection.value, notice.sequence)
            # Anything already queued is covered by this reload.
            closed = False
            while not queue.empty():
                if queue.get_nowait() is None:
                    closed = True
                    break
            await self._safe_reload()
            if closed:
                return

    async def _safe_reload(self) -> None:
        try:
            await self.reload()
        except Exception as exc:
            logger.error("❌ Reload crashed: %s", exc, exc_info=True)
            self._mutations.banner.report(f"Reload failed: {exc}")

    async def stop(self) -> None:
        if self._queue is not None:
            self._store.unsubscribe(self._queue)
            self._queue = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
