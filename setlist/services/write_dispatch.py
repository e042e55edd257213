"""
Fire-and-forget backend writes.

Callers commit a local mutation first, then hand the corresponding backend
write to ``BackendWriter.submit``.  The writer never blocks the caller and
never retries: a failure is logged and becomes the single most-recent
error on the banner.  Multi-step writes (delete then insert) are submitted
as one coroutine; a failure partway stops the sequence with no rollback.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from setlist.core.mutation_store import ErrorBanner
from setlist.errors import BackendError

logger = logging.getLogger(__name__)


class BackendWriter:
    """Schedules backend writes as tasks and reports their failures."""

    def __init__(self, banner: ErrorBanner) -> None:
        self._banner = banner
        self._pending: set[asyncio.Task[Any]] = set()
        self.failures = 0

    def submit(self, label: str, write: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run *write* in the background; its outcome is reported, not returned."""
        task = asyncio.create_task(self._run(label, write), name=f"write:{label}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(self, label: str, write: Coroutine[Any, Any, Any]) -> Any:
        try:
            result = await write
        except BackendError as exc:
            self._fail(label, str(exc))
            return None
        except Exception as exc:
            logger.exception("❌ Write %r crashed", label)
            self._fail(label, f"{type(exc).__name__}: {exc}")
            return None
        logger.debug("✅ Write %r done", label)
        return result

    def _fail(self, label: str, message: str) -> None:
        self.failures += 1
        logger.error("❌ Write %r failed: %s", label, message)
        self._banner.report(f"{label}: {message}")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every write submitted so far (CLI exit, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
