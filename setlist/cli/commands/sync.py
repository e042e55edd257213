"""setlist sync / setlist watch — pull the shared catalog, optionally follow it."""
from __future__ import annotations

import asyncio
import logging

import typer

from setlist.cli._session import run_with_session
from setlist.models.domain import AppState
from setlist.services.session import SetlistSession

logger = logging.getLogger(__name__)


def summarize(state: AppState) -> str:
    """One-line count of what the snapshot holds."""
    return (
        f"{len(state.songs)} songs, {len(state.gigs)} gigs, "
        f"{len(state.musicians)} musicians, {len(state.special_requests)} requests"
    )


async def _sync_async(session: SetlistSession) -> None:
    typer.echo(f"✅ Synced {summarize(session.state)}")


def run_sync() -> None:
    run_with_session("sync", _sync_async)


async def _watch_async(session: SetlistSession, seconds: float | None) -> None:
    typer.echo(f"✅ Watching {summarize(session.state)}")

    def _on_change(state: AppState) -> None:
        typer.echo(f"🔄 Snapshot updated: {summarize(state)}")

    unsubscribe = session.mutations.subscribe(_on_change)
    try:
        if seconds is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(seconds)
    finally:
        unsubscribe()
    typer.echo(f"Stopped after {session.reconciler.reload_count} reload(s)")


def run_watch(seconds: float | None) -> None:
    try:
        run_with_session("watch", lambda session: _watch_async(session, seconds), watch=True)
    except KeyboardInterrupt:
        typer.echo("Stopped.")
