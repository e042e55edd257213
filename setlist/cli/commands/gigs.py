"""
setlist gigs / setlist show — read-only views of the snapshot.

``show`` renders one gig the way the band reads it on stage: songs grouped
by effective section (overrides first, then tags), each with its gig keys,
a marker on the now-playing song and a warning where singers disagree.
"""
from __future__ import annotations

import logging

import typer

from setlist.cli._session import run_with_session
from setlist.cli.errors import ExitCode
from setlist.core.overlay import UNSECTIONED, effective_keys, key_conflict, section_members
from setlist.models.domain import AppState, Gig, Song
from setlist.services.session import SetlistSession

logger = logging.getLogger(__name__)


def format_song_line(state: AppState, gig: Gig, song: Song, position: int) -> str:
    """Render one song of a gig: title, artist, keys and markers."""
    line = f"  {position:>2}. {song.title}"
    if song.artist:
        line += f" - {song.artist}"
    keys = effective_keys(gig, song)
    if keys:
        line += "  [" + ", ".join(
            f"{k.singer}: {k.key}{'*' if k.overridden else ''}" for k in keys
        ) + "]"
    if key_conflict(gig, song) is not None:
        line += "  ⚠️ keys disagree"
    if state.now_playing.get(gig.id) == song.id:
        line += "  ▶ now playing"
    return line


def render_gig(session: SetlistSession, gig: Gig) -> list[str]:
    state = session.state
    manual = session.local.section_order(gig.id) if session.local is not None else None
    lines = [f"{gig.name}  ({gig.date}{', ' + gig.venue if gig.venue else ''})"]
    for label, songs in section_members(state, gig, manual).items():
        if not songs:
            continue
        lines.append("")
        lines.append("Unsectioned" if label == UNSECTIONED else label)
        lines.extend(format_song_line(state, gig, song, i) for i, song in enumerate(songs, start=1))

    requests = [r for r in state.special_requests if r.gig_id == gig.id]
    if requests:
        lines.append("")
        lines.append("Special requests")
        for request in requests:
            who = ", ".join(request.singers) or ("DJ" if request.dj_only else "unassigned")
            key = f" in {request.key}" if request.key else ""
            lines.append(f"  {request.request_type}: {request.song_title} ({who}{key})")
    return lines


async def _gigs_async(session: SetlistSession) -> None:
    gigs = sorted(session.state.gigs, key=lambda g: g.date)
    if not gigs:
        typer.echo("No gigs yet.")
        return
    for gig in gigs:
        typer.echo(f"{gig.id}  {gig.date}  {gig.name}  ({len(gig.song_ids)} songs)")


def run_gigs() -> None:
    run_with_session("gigs", _gigs_async)


async def _show_async(session: SetlistSession, gig_id: str) -> None:
    gig = session.state.gig(gig_id)
    if gig is None:
        typer.echo(f"❌ Unknown gig: {gig_id}")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    for line in render_gig(session, gig):
        typer.echo(line)


def run_show(gig_id: str) -> None:
    run_with_session("show", lambda session: _show_async(session, gig_id))
