"""Optimistic mutation store — the single owner of the in-memory snapshot.

Boundary rules:

OptimisticStore MAY:
    - Apply a pure ``AppState → AppState`` updater synchronously
      (``commit_change``) and record the prior state for undo.
    - Restore the most recent prior state (``undo_last``).
    - Be wholesale-replaced by the reconciler (``replace_snapshot``).
    - Hold the single most-recent backend error (``banner``).

OptimisticStore MUST NOT:
    - Issue backend writes.  Callers fire their own writes after a
      successful ``commit_change``; the two are not transactional.
    - Retract remote writes on undo.  Undo is local-view-only: a write
      already sent for the undone mutation stays sent, and the next reload
      will bring it back.
    - Accept mutations from a non-admin role (silently rejected).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from setlist.models.domain import AppState, HistoryEntry, Role

logger = logging.getLogger(__name__)

Updater = Callable[[AppState], AppState]
Listener = Callable[[AppState], None]


class ErrorBanner:
    """The single most-recent backend error, dismissible."""

    def __init__(self) -> None:
        self._message: str | None = None
        self._raised_at: datetime | None = None

    def report(self, message: str) -> None:
        """Replace the banner with *message*."""
        self._message = message
        self._raised_at = datetime.now(timezone.utc)

    def dismiss(self) -> None:
        self._message = None
        self._raised_at = None

    @property
    def current(self) -> str | None:
        return self._message

    @property
    def raised_at(self) -> datetime | None:
        return self._raised_at


class OptimisticStore:
    """
    Snapshot + undo stack + role gate.

    The history stack has no depth cap.  Reload replacements do not touch
    it, so undo after a reload restores a state captured before the reload.
    """

    def __init__(self, initial: AppState | None = None, role: Role | None = None) -> None:
        self._state: AppState = initial if initial is not None else AppState()
        self._history: list[HistoryEntry] = []
        self._listeners: list[Listener] = []
        self.role: Role | None = role
        self.banner = ErrorBanner()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._history)

    @property
    def is_authorized(self) -> bool:
        return self.role == Role.ADMIN

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def commit_change(self, label: str, updater: Updater) -> bool:
        """
        Apply *updater* to the current snapshot and push a history entry.

        Returns False (and changes nothing) when the role is not admin.
        If the updater raises, the snapshot and history are left untouched.
        """
        if not self.is_authorized:
            logger.debug("Rejected %r: role %s may not mutate", label, self.role)
            return False
        current = self._state
        next_state = updater(current)
        self._history.append(
            HistoryEntry(label=label, state=current.model_copy(deep=True))
        )
        self._state = next_state
        logger.debug("✅ Committed %r (history depth %d)", label, len(self._history))
        self._notify()
        return True

    def undo_last(self) -> HistoryEntry | None:
        """
        Restore the state before the most recent commit.

        No-op (returns None) when the stack is empty.  Issues no backend
        writes.
        """
        if not self._history:
            return None
        entry = self._history.pop()
        self._state = entry.state
        logger.info("↩️ Undid %r (local view only)", entry.label)
        self._notify()
        return entry

    def replace_snapshot(self, state: AppState) -> None:
        """Wholesale replacement by the reconciler; history is kept."""
        self._state = state
        self._notify()

    def set_now_playing(self, gig_id: str, song_id: str | None) -> None:
        """Update one gig's now-playing pointer without a history entry."""
        now_playing = dict(self._state.now_playing)
        now_playing[gig_id] = song_id
        self._state = self._state.model_copy(update={"now_playing": now_playing})
        self._notify()

    def merge_now_playing(self, pointers: dict[str, str | None]) -> None:
        """Replace the whole now-playing map (poll result)."""
        if pointers == self._state.now_playing:
            return
        self._state = self._state.model_copy(update={"now_playing": dict(pointers)})
        self._notify()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* after every snapshot change; returns an unsubscribe."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    def clear_history(self) -> None:
        """Drop every history entry (logout)."""
        self._history.clear()
