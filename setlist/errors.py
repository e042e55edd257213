"""Exception types for Setlist Connect."""
from __future__ import annotations


class SetlistError(Exception):
    """Base exception for Setlist Connect errors."""


class UnknownEntityError(SetlistError):
    """Raised when an action references an id missing from the snapshot."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"Unknown {kind}: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class DuplicateSongError(SetlistError):
    """Raised when a new song matches an existing title (and artist)."""

    def __init__(self, existing_id: str, title: str) -> None:
        super().__init__(f"Song already exists: {title!r} ({existing_id})")
        self.existing_id = existing_id


class RequeueConfirmationRequired(SetlistError):
    """Raised when a locked song is queued again without confirmation."""

    def __init__(self, gig_id: str, song_id: str) -> None:
        super().__init__(
            f"Song {song_id} was already queued at gig {gig_id}; confirm to queue it again"
        )
        self.gig_id = gig_id
        self.song_id = song_id


class BackendError(SetlistError):
    """A Backend Collection Store call failed."""

    def __init__(self, collection: str, operation: str, message: str) -> None:
        super().__init__(f"{operation} {collection} failed: {message}")
        self.collection = collection
        self.operation = operation
