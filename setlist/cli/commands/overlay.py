"""setlist section / setlist resolve-key — gig-scoped overlay edits."""
from __future__ import annotations

import logging

import typer

from setlist.cli._session import require_change, run_with_session
from setlist.services.session import SetlistSession

logger = logging.getLogger(__name__)


async def _section_async(
    session: SetlistSession, gig_id: str, song_id: str, label: str | None,
) -> None:
    if label is None:
        require_change(session.overlays.clear_section(gig_id, song_id))
        typer.echo(f"✅ Cleared section override for {song_id} at {gig_id}")
        return
    require_change(session.overlays.assign_section(gig_id, song_id, label))
    typer.echo(f"✅ {song_id} moved to {label.strip()} at {gig_id}")


def run_section(gig_id: str, song_id: str, label: str | None) -> None:
    run_with_session("section", lambda session: _section_async(session, gig_id, song_id, label))


async def _resolve_key_async(session: SetlistSession, gig_id: str, song_id: str, key: str) -> None:
    conflicts = {c.song_id: c for c in session.overlays.detect_conflicts(gig_id)}
    require_change(session.overlays.resolve_conflicting_key(gig_id, song_id, key))
    before = conflicts.get(song_id)
    if before is None:
        typer.echo(f"✅ {song_id} at {gig_id} set to {key.strip()} (no conflict found)")
    else:
        typer.echo(
            f"✅ {song_id} at {gig_id}: {', '.join(before.distinct_keys)} → {key.strip()}"
        )


def run_resolve_key(gig_id: str, song_id: str, key: str) -> None:
    run_with_session("resolve-key", lambda session: _resolve_key_async(session, gig_id, song_id, key))
