"""
In-process Backend Collection Store.

Used for local mode (nothing shared across devices) and in tests.  Rows are
copied on the way in and out so callers can never alias stored state.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Sequence

from setlist.contracts.row_types import Collection, Row
from setlist.errors import BackendError
from setlist.services.change_feed import ChangeFeed
from setlist.services.collection_store import CollectionStore, Match, row_matches, sort_rows

logger = logging.getLogger(__name__)

# Collections keyed by something other than a generated ``id``.
_NATURAL_KEYS: dict[Collection, str] = {
    Collection.NOW_PLAYING: "gig_id",
}


class MemoryCollectionStore(CollectionStore):
    """Dict-of-lists store.  Writes publish on the shared change feed."""

    name = "memory"

    def __init__(
        self,
        feed: ChangeFeed | None = None,
        seed: dict[Collection, list[Row]] | None = None,
    ) -> None:
        super().__init__(feed)
        self._tables: dict[Collection, list[Row]] = {c: [] for c in Collection}
        self._closed = False
        for collection, rows in (seed or {}).items():
            self._tables[collection] = [self._with_id(collection, row) for row in rows]

    def _with_id(self, collection: Collection, row: Row) -> Row:
        stored = copy.deepcopy(dict(row))
        if collection not in _NATURAL_KEYS:
            stored.setdefault("id", str(uuid.uuid4()))
        return stored

    def _check_open(self, collection: Collection, operation: str) -> None:
        if self._closed:
            raise BackendError(collection.value, operation, "store is closed")

    async def select(
        self,
        collection: Collection,
        match: Match | None = None,
        order_by: str | None = None,
    ) -> list[Row]:
        self._check_open(collection, "select")
        rows = [copy.deepcopy(r) for r in self._tables[collection] if row_matches(r, match)]
        return sort_rows(rows, order_by)

    async def insert(self, collection: Collection, rows: Sequence[Row]) -> list[Row]:
        self._check_open(collection, "insert")
        stored = [self._with_id(collection, row) for row in rows]
        self._tables[collection].extend(stored)
        self._published(collection, len(stored))
        return [copy.deepcopy(r) for r in stored]

    async def update(self, collection: Collection, values: Row, match: Match) -> int:
        self._check_open(collection, "update")
        count = 0
        for row in self._tables[collection]:
            if row_matches(row, match):
                row.update(copy.deepcopy(dict(values)))
                count += 1
        self._published(collection, count)
        return count

    async def upsert(
        self,
        collection: Collection,
        row: Row,
        on_conflict: Sequence[str],
    ) -> Row:
        self._check_open(collection, "upsert")
        key = {column: row.get(column) for column in on_conflict}
        for existing in self._tables[collection]:
            if row_matches(existing, key):
                existing.update(copy.deepcopy(dict(row)))
                self._published(collection, 1)
                return copy.deepcopy(existing)
        stored = self._with_id(collection, row)
        self._tables[collection].append(stored)
        self._published(collection, 1)
        return copy.deepcopy(stored)

    async def delete(self, collection: Collection, match: Match) -> int:
        self._check_open(collection, "delete")
        kept = [r for r in self._tables[collection] if not row_matches(r, match)]
        count = len(self._tables[collection]) - len(kept)
        self._tables[collection] = kept
        self._published(collection, count)
        return count

    async def close(self) -> None:
        self._closed = True
        await super().close()
        logger.debug("Memory store closed")

    def rows(self, collection: Collection) -> list[Row]:
        """Raw table contents (for testing)."""
        return [copy.deepcopy(r) for r in self._tables[collection]]
