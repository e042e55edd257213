"""Base class for Backend Collection Stores."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence

from setlist.contracts.row_types import Collection, Row
from setlist.services.change_feed import ChangeFeed, NoticeQueue

# Exact-match predicate: column → value.  A None value means "IS NULL".
Match = Mapping[str, object]


def row_matches(row: Mapping[str, object], match: Match | None) -> bool:
    """True when every column in *match* equals the row's value."""
    if not match:
        return True
    for column, expected in match.items():
        actual = row.get(column)
        if expected is None:
            if actual is not None:
                return False
        elif actual != expected:
            return False
    return True


def sort_rows(rows: list[Row], order_by: str | None) -> list[Row]:
    """Order rows by one column, NULLs last.  Stable for equal keys."""
    if not order_by:
        return rows
    return sorted(rows, key=lambda r: (r.get(order_by) is None, r.get(order_by)))


class CollectionStore(ABC):
    """
    Row-oriented collections with exact-match CRUD and change notices.

    Every successful write publishes one notice for its collection on
    ``self.feed``.  Notices carry no delta.  Implementations raise
    ``BackendError`` for any failure.
    """

    name: str = "abstract"

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self.feed = feed if feed is not None else ChangeFeed()

    @abstractmethod
    async def select(
        self,
        collection: Collection,
        match: Match | None = None,
        order_by: str | None = None,
    ) -> list[Row]:
        """Return every row matching *match*, optionally ordered."""

    @abstractmethod
    async def insert(self, collection: Collection, rows: Sequence[Row]) -> list[Row]:
        """Insert rows; returns them as stored (ids assigned)."""

    @abstractmethod
    async def update(self, collection: Collection, values: Row, match: Match) -> int:
        """Set *values* on every matching row; returns the count."""

    @abstractmethod
    async def upsert(
        self,
        collection: Collection,
        row: Row,
        on_conflict: Sequence[str],
    ) -> Row:
        """Insert *row*, or update the row whose *on_conflict* columns match."""

    @abstractmethod
    async def delete(self, collection: Collection, match: Match) -> int:
        """Delete every matching row; returns the count."""

    def subscribe(self, collections: Iterable[Collection]) -> NoticeQueue:
        """Subscribe to change notices for *collections*."""
        return self.feed.subscribe(collections)

    def unsubscribe(self, queue: NoticeQueue) -> None:
        self.feed.unsubscribe(queue)

    async def close(self) -> None:
        """Release resources and end every subscription."""
        self.feed.close()

    def _published(self, collection: Collection, changed: int) -> None:
        if changed:
            self.feed.publish(collection)
