"""
Shared plumbing for admin actions.

Every action follows the same two steps:

    1. ``commit_change(label, updater)`` on the OptimisticStore: the local
       snapshot changes synchronously, or nothing happens for a non-admin.
    2. ``BackendWriter.submit(label, coroutine)``: the backend writes run in
       the background.  Writes that must happen in order (delete then
       insert) are awaited in sequence inside one coroutine; nothing is
       rolled back if a later step fails.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Coroutine
from datetime import date, datetime, timezone
from typing import Any

from setlist.contracts.row_types import Row
from setlist.core.mutation_store import OptimisticStore, Updater
from setlist.models.domain import AppState
from setlist.services.collection_store import CollectionStore, Match
from setlist.services.local_state import LocalStateCache
from setlist.services.write_dispatch import BackendWriter

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def today_iso() -> str:
    return date.today().isoformat()


class ActionContext:
    """Store, snapshot, writer and tenant scope shared by the action facades."""

    def __init__(
        self,
        store: CollectionStore,
        mutations: OptimisticStore,
        writer: BackendWriter,
        tenant_id: str | None = None,
        local: LocalStateCache | None = None,
    ) -> None:
        self.store = store
        self.mutations = mutations
        self.writer = writer
        self.tenant_id = tenant_id
        self.local = local

    @property
    def state(self) -> AppState:
        return self.mutations.state

    def row(self, **values: object) -> Row:
        """A row to insert: generated id unless given, plus the tenant."""
        row: Row = {"id": new_id(), **values}
        if self.tenant_id:
            row["tenant_id"] = self.tenant_id
        return row

    def match(self, **values: object) -> Match:
        """Exact-match predicate, tenant-scoped when a tenant is set."""
        match: dict[str, object] = dict(values)
        if self.tenant_id:
            match["tenant_id"] = self.tenant_id
        return match

    def commit(self, label: str, updater: Updater) -> bool:
        return self.mutations.commit_change(label, updater)

    def write(self, label: str, write: Coroutine[Any, Any, Any]) -> None:
        self.writer.submit(label, write)


class Actions:
    """Base for action facades."""

    def __init__(self, ctx: ActionContext) -> None:
        self.ctx = ctx

    @property
    def state(self) -> AppState:
        return self.ctx.state
