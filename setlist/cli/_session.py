"""
Session helpers shared by every ``setlist`` subcommand.

Each command builds one ``SetlistSession`` from the environment, performs
the initial full reload, runs its body, drains pending backend writes and
closes the store.  Domain errors map onto ``ExitCode``.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from pydantic import ValidationError

from setlist.cli.errors import ExitCode
from setlist.errors import DuplicateSongError, RequeueConfirmationRequired, UnknownEntityError
from setlist.services.session import SetlistSession, open_session

logger = logging.getLogger(__name__)

T = TypeVar("T")

_USER_ERRORS = (UnknownEntityError, DuplicateSongError, RequeueConfirmationRequired, ValueError)


async def _with_session(body: Callable[[SetlistSession], Awaitable[T]], watch: bool) -> T:
    try:
        session = await open_session()
    except ValidationError as exc:
        typer.echo(f"❌ Invalid configuration: {exc}")
        raise typer.Exit(code=int(ExitCode.CONFIG_INVALID))

    async with session:
        if not await session.start(watch=watch):
            typer.echo(f"❌ Initial sync failed: {session.error}")
            raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))
        result = await body(session)
        await session.writer.drain()
        if session.writer.failures:
            typer.echo(f"⚠️ {session.error}")
            raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))
        return result


def run_with_session(
    name: str,
    body: Callable[[SetlistSession], Awaitable[T]],
    watch: bool = False,
) -> T:
    """Run *body* against a fresh session, translating errors to exit codes."""
    try:
        return asyncio.run(_with_session(body, watch))
    except typer.Exit:
        raise
    except _USER_ERRORS as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    except Exception as exc:
        typer.echo(f"❌ setlist {name} failed: {exc}")
        logger.error("❌ setlist %s error: %s", name, exc, exc_info=True)
        raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))


def require_change(applied: bool) -> None:
    """Exit with USER_ERROR when a mutation was refused for the acting role."""
    if not applied:
        typer.echo("❌ Only an admin may change the setlist (set SETLIST_ROLE=admin)")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
