"""setlist now-playing — show, queue or clear a gig's now-playing song."""
from __future__ import annotations

import logging

import typer

from setlist.cli._session import require_change, run_with_session
from setlist.cli.errors import ExitCode
from setlist.services.session import SetlistSession

logger = logging.getLogger(__name__)


async def _now_playing_async(
    session: SetlistSession,
    gig_id: str,
    song_id: str | None,
    clear: bool,
    confirm: bool,
) -> None:
    if session.state.gig(gig_id) is None:
        typer.echo(f"❌ Unknown gig: {gig_id}")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))

    if clear:
        require_change(session.now_playing.clear(gig_id))
        typer.echo(f"✅ Cleared now playing at {gig_id}")
        return

    if song_id is None:
        current = session.now_playing.current(gig_id)
        song = session.state.song(current) if current else None
        typer.echo(f"▶ {song.title}" if song is not None else "Nothing playing.")
        return

    require_change(session.now_playing.queue(gig_id, song_id, confirm=confirm))
    typer.echo(f"✅ Queued {song_id} at {gig_id}")


def run_now_playing(gig_id: str, song_id: str | None, clear: bool, confirm: bool) -> None:
    if clear and song_id is not None:
        typer.echo("❌ Pass either SONG_ID or --clear, not both")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    run_with_session(
        "now-playing",
        lambda session: _now_playing_async(session, gig_id, song_id, clear, confirm),
    )
