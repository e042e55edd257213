"""
Change feed for Backend Collection Stores.

Fans generic "some row in this collection changed" notices out to
subscriber queues.  A notice carries the collection only, never the row
delta; subscribers reload whole collections.

Architecture:
    store write → publish(collection) → ChangeFeed → subscriber queues
                                                        ↓
                                                  SyncReconciler
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from setlist.contracts.row_types import Collection

logger = logging.getLogger(__name__)

NoticeQueue = asyncio.Queue["ChangeNotice | None"]


@dataclass(frozen=True)
class ChangeNotice:
    """A collection changed.  No row payload by contract."""

    collection: Collection
    sequence: int
    received_at: float = field(default_factory=time.time)


class ChangeFeed:
    """
    Manages change subscriptions for one backend.

    Each subscriber names the collections it tracks and gets a bounded
    queue.  A None sentinel signals end-of-stream.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._maxsize = maxsize
        self._subscribers: list[tuple[frozenset[Collection], NoticeQueue]] = []
        self._sequence = itertools.count(1)

    def publish(self, collection: Collection) -> int:
        """
        Notify every subscriber tracking *collection*.

        Returns the number of subscribers that received the notice.
        """
        notice = ChangeNotice(collection=collection, sequence=next(self._sequence))
        delivered = 0
        for collections, queue in self._subscribers:
            if collection not in collections:
                continue
            try:
                queue.put_nowait(notice)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "⚠️ Change queue full, dropping %s notice seq=%d",
                    collection.value,
                    notice.sequence,
                )
        logger.debug(
            "Published %s seq=%d to %d/%d subscribers",
            collection.value,
            notice.sequence,
            delivered,
            len(self._subscribers),
        )
        return delivered

    def subscribe(self, collections: Iterable[Collection]) -> NoticeQueue:
        """Subscribe to notices for *collections*."""
        queue: NoticeQueue = asyncio.Queue(maxsize=self._maxsize)
        tracked = frozenset(collections)
        self._subscribers.append((tracked, queue))
        logger.debug("New change subscriber for %d collections", len(tracked))
        return queue

    def unsubscribe(self, queue: NoticeQueue) -> None:
        """Remove a subscriber queue."""
        self._subscribers = [(c, q) for c, q in self._subscribers if q is not queue]

    def close(self) -> None:
        """Signal end-of-stream to every subscriber, then drop them all."""
        for _collections, queue in self._subscribers:
            try:
                queue.put_nowait(None)
            except asyncio.QueueFull:
                pass
        self._subscribers.clear()

    def clear(self) -> None:
        """Clear all state (for testing)."""
        self._subscribers.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
