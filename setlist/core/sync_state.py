"""
Reconciler State Machine.

Explicit state transitions for the sync reconciler.
Never set the reconciler status directly — always go through assert_transition().

States:
    IDLE      — Snapshot derived views are whatever the last reload produced
    RELOADING — A full fetch of every tracked collection is in flight

Invariants:
    1. A change notification moves IDLE → RELOADING.
    2. A reload always ends in IDLE, whether it succeeded or failed.
    3. There is no version token: a slow reload may overwrite a newer
       unconfirmed local edit.
"""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    """Reconciler lifecycle states."""

    IDLE = "idle"
    RELOADING = "reloading"


# Allowed transitions: from_state -> set of valid to_states.
_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.IDLE: frozenset({SyncStatus.RELOADING}),
    SyncStatus.RELOADING: frozenset({SyncStatus.IDLE}),
}


class InvalidTransitionError(Exception):
    """Raised when a state transition violates the state machine."""

    def __init__(self, from_state: SyncStatus, to_state: SyncStatus):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition: {from_state.value} → {to_state.value}"
        )


def assert_transition(from_state: SyncStatus, to_state: SyncStatus) -> None:
    """
    Validate that a state transition is allowed.

    Raises InvalidTransitionError if the transition violates the state machine.
    """
    allowed = _TRANSITIONS.get(from_state, frozenset())
    if to_state not in allowed:
        raise InvalidTransitionError(from_state, to_state)


def can_start_reload(status: SyncStatus) -> bool:
    """Check if a reload may start from the given status."""
    return status == SyncStatus.IDLE
