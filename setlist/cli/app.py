"""
Setlist CLI — Typer application root.

Entry point for the ``setlist`` console script.  Every subcommand builds a
session from ``SETLIST_*`` environment variables, performs the initial full
reload and then reads or mutates the shared catalog.

Commands are registered as plain ``@cli.command()`` functions so options
may follow positional arguments (``setlist now-playing GIG SONG --confirm``).
"""
from __future__ import annotations

import logging
from typing import Optional

import typer

from setlist.cli.commands.gigs import run_gigs, run_show
from setlist.cli.commands.now_playing import run_now_playing
from setlist.cli.commands.overlay import run_resolve_key, run_section
from setlist.cli.commands.sync import run_sync, run_watch
from setlist.cli.errors import ExitCode
from setlist.config import settings

cli = typer.Typer(
    name="setlist",
    help="Setlist Connect: shared song library, gig overlays and live sync.",
    no_args_is_help=True,
)


@cli.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Configure logging before any subcommand runs."""
    logging.basicConfig(
        level=logging.DEBUG if (verbose or settings.debug) else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
def sync() -> None:
    """Reload every collection and print a summary."""
    run_sync()


@cli.command()
def watch(
    seconds: Optional[float] = typer.Option(
        None, "--seconds", help="Stop after this many seconds (default: until interrupted)."
    ),
) -> None:
    """Follow change notices and now-playing polls, printing each new snapshot."""
    run_watch(seconds)


@cli.command()
def gigs() -> None:
    """List gigs by date."""
    run_gigs()


@cli.command()
def show(gig_id: str = typer.Argument(..., help="Gig id.")) -> None:
    """Show a gig's songs grouped by section, with keys and conflicts."""
    run_show(gig_id)


@cli.command()
def section(
    gig_id: str = typer.Argument(..., help="Gig id."),
    song_id: str = typer.Argument(..., help="Song id."),
    label: Optional[str] = typer.Argument(None, help="Section label, e.g. 'Dance Set 2'."),
    clear: bool = typer.Option(False, "--clear", help="Remove the override instead."),
) -> None:
    """Place a song in a section at one gig only."""
    if (label is None) != clear:
        typer.echo("❌ Pass exactly one of LABEL or --clear")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    run_section(gig_id, song_id, label)


@cli.command("resolve-key")
def resolve_key(
    gig_id: str = typer.Argument(..., help="Gig id."),
    song_id: str = typer.Argument(..., help="Song id."),
    key: str = typer.Argument(..., help="Key every overridden singer should use."),
) -> None:
    """Collapse disagreeing singer keys for a song at a gig onto one key."""
    run_resolve_key(gig_id, song_id, key)


@cli.command("now-playing")
def now_playing(
    gig_id: str = typer.Argument(..., help="Gig id."),
    song_id: Optional[str] = typer.Argument(None, help="Song to queue."),
    clear: bool = typer.Option(False, "--clear", help="Clear the pointer and log the song as played."),
    confirm: bool = typer.Option(False, "--confirm", help="Queue a song that was already played."),
) -> None:
    """Show, queue or clear the gig's now-playing song."""
    run_now_playing(gig_id, song_id, clear, confirm)
