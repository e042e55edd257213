"""
Session wiring.

A ``SetlistSession`` assembles every engine component around one Backend
Collection Store:

    store ─┬─ SyncReconciler ──▶ OptimisticStore ◀── action facades
           ├─ BackendWriter ◀──────────────────────┘
           └─ NowPlayingPointer / NowPlayingPoller

Usage::

    async with await open_session() as session:
        session.overlays.assign_section(gig_id, song_id, "Dance Set 2")
"""

from __future__ import annotations

import logging
import types

from setlist.config import Settings, get_settings
from setlist.core.mutation_store import OptimisticStore
from setlist.db.database import get_database_url
from setlist.models.domain import AppState, HistoryEntry, Role
from setlist.services.actions import ActionContext
from setlist.services.catalog_actions import CatalogActions
from setlist.services.collection_store import CollectionStore
from setlist.services.gig_actions import GigActions
from setlist.services.local_state import LocalStateCache
from setlist.services.memory_store import MemoryCollectionStore
from setlist.services.now_playing import NowPlayingPointer, NowPlayingPoller
from setlist.services.overlay_actions import OverlayActions
from setlist.services.reconciler import SyncReconciler
from setlist.services.rest_store import RestCollectionStore
from setlist.services.sql_store import SqlCollectionStore
from setlist.services.write_dispatch import BackendWriter

logger = logging.getLogger(__name__)


class SetlistSession:
    """One device's view of the shared catalog."""

    def __init__(
        self,
        store: CollectionStore,
        role: Role | None = None,
        tenant_id: str | None = None,
        local: LocalStateCache | None = None,
        poll_seconds: float = 5.0,
    ) -> None:
        self.store = store
        self.tenant_id = tenant_id
        self.local = local
        self.mutations = OptimisticStore(role=role)
        self.writer = BackendWriter(self.mutations.banner)
        self.reconciler = SyncReconciler(store, self.mutations, tenant_id=tenant_id)

        ctx = ActionContext(store, self.mutations, self.writer, tenant_id=tenant_id, local=local)
        self.catalog = CatalogActions(ctx)
        self.gigs = GigActions(ctx)
        self.overlays = OverlayActions(ctx)
        self.now_playing = NowPlayingPointer(
            store, self.mutations, self.writer, local=local, tenant_id=tenant_id,
        )
        self.poller = NowPlayingPoller(store, self.mutations, interval=poll_seconds, tenant_id=tenant_id)

    @property
    def state(self) -> AppState:
        return self.mutations.state

    @property
    def error(self) -> str | None:
        return self.mutations.banner.current

    def undo(self) -> HistoryEntry | None:
        """Revert the local view of the last mutation; no backend writes."""
        return self.mutations.undo_last()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def login(self, role: Role) -> None:
        self.mutations.role = role
        if self.local is not None:
            self.local.touch()

    def logout(self) -> None:
        self.mutations.role = None
        self.mutations.clear_history()

    def check_session(self) -> bool:
        """Log out when the local session has timed out; True while still valid."""
        if self.local is None or not self.local.is_session_expired():
            return True
        logger.info("Session expired after inactivity")
        self.logout()
        return False

    async def start(self, watch: bool = False) -> bool:
        """Initial full reload; with *watch*, also follow changes and poll."""
        if self.local is not None:
            self.local.set_last_tenant(self.tenant_id)
        loaded = await self.reconciler.reload()
        if watch:
            await self.reconciler.start()
            self.poller.start()
        return loaded

    async def close(self) -> None:
        await self.writer.drain()
        await self.poller.stop()
        await self.reconciler.stop()
        await self.store.close()

    async def __aenter__(self) -> SetlistSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()


async def create_store(settings: Settings) -> CollectionStore:
    """Build the Backend Collection Store selected by ``settings.backend``."""
    if settings.backend == "sql":
        store = SqlCollectionStore(get_database_url(settings), echo=settings.debug)
        await store.create_all()
        return store
    if settings.backend == "rest":
        if not settings.rest_url:
            raise ValueError("SETLIST_REST_URL is required for the rest backend")
        return RestCollectionStore(
            settings.rest_url,
            api_key=settings.rest_api_key,
            timeout=settings.rest_timeout,
            realtime_path=settings.realtime_path,
        )
    logger.warning("⚠️ Using the in-memory backend; nothing is shared across devices")
    return MemoryCollectionStore()


async def open_session(settings: Settings | None = None, store: CollectionStore | None = None) -> SetlistSession:
    """Create a session from settings (environment by default)."""
    settings = settings or get_settings()
    if store is None:
        store = await create_store(settings)
    local = LocalStateCache(settings.local_state_path, settings.session_timeout_seconds)
    return SetlistSession(
        store,
        role=Role(settings.role) if settings.role else None,
        tenant_id=settings.tenant_id,
        local=local,
        poll_seconds=settings.now_playing_poll_seconds,
    )
