"""Exit-code contract for the Setlist CLI."""
from __future__ import annotations

import enum


class ExitCode(enum.IntEnum):
    """Standardised CLI exit codes.

    0 — success
    1 — user error (bad arguments, unknown gig/song, not an admin)
    2 — config invalid
    3 — backend / internal error
    """

    SUCCESS = 0
    USER_ERROR = 1
    CONFIG_INVALID = 2
    INTERNAL_ERROR = 3
