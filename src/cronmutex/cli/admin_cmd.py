"""CLI commands for inspecting and clearing mutexes.

Usage:
    cronmutex-admin status default nightly-report
    cronmutex-admin status default nightly-report --json
    cronmutex-admin reset default nightly-report --yes
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TypeVar

import typer

from cronmutex.cache.client import CacheError, RedisCacheClient
from cronmutex.cache.keys import LockKeys
from cronmutex.config import ServerEndpoint, UnknownServerError, settings
from cronmutex.distributed.lock import LockStatus, LockStore

if TYPE_CHECKING:
    from rich.console import Console

T = TypeVar("T")

app = typer.Typer(
    name="cronmutex-admin",
    help="Inspect and reset cronmutex locks",
    no_args_is_help=True,
    add_completion=False,
)


@app.command()
def status(
    server_name: str = typer.Argument(..., help="Cache server name"),
    mutex_name: str = typer.Argument(..., help="Mutex name"),
    as_json: bool = typer.Option(False, "--json", help="Print status as JSON"),
) -> None:
    """Show the current holder and last run time of a mutex."""
    from rich.console import Console
    from rich.table import Table

    console = Console()
    endpoint = _resolve(server_name, console)
    lock_status = asyncio.run(_with_store(endpoint, console, lambda s: s.describe(mutex_name)))

    data = status_to_dict(lock_status)
    if as_json:
        console.print_json(json.dumps(data))
        return

    table = Table(title=f"Mutex '{mutex_name}'")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Locked", "yes" if lock_status.locked else "no")
    table.add_row("Holder", lock_status.holder or "-")
    table.add_row("Lock TTL", _seconds(lock_status.lock_ttl))
    table.add_row("Last run", data["last_run"] or "never")
    table.add_row("Metadata TTL", _seconds(lock_status.metadata_ttl))
    console.print(table)


@app.command()
def reset(
    server_name: str = typer.Argument(..., help="Cache server name"),
    mutex_name: str = typer.Argument(..., help="Mutex name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a mutex's lock record and last-run marker.

    The next gate invocation for this mutex runs its task regardless of
    min delay.
    """
    from rich.console import Console

    console = Console()
    endpoint = _resolve(server_name, console)

    if not yes:
        typer.confirm(f"Reset mutex '{mutex_name}' on '{server_name}'?", abort=True)

    removed = asyncio.run(_with_store(endpoint, console, lambda s: s.reset(mutex_name)))
    if removed:
        console.print(f"[green]Reset mutex '{mutex_name}'[/green]")
    else:
        console.print(f"[yellow]Mutex '{mutex_name}' had no keys[/yellow]")


def status_to_dict(lock_status: LockStatus) -> dict[str, object]:
    """Serializable view of a lock status, with the last run as ISO-8601 UTC."""
    last_run: str | None = None
    if lock_status.metadata is not None:
        try:
            last_run = datetime.fromtimestamp(float(lock_status.metadata), UTC).isoformat()
        except (ValueError, OverflowError, OSError):
            last_run = lock_status.metadata

    return {
        "name": lock_status.name,
        "locked": lock_status.locked,
        "holder": lock_status.holder,
        "lock_ttl": lock_status.lock_ttl,
        "last_run": last_run,
        "metadata_ttl": lock_status.metadata_ttl,
    }


def _seconds(value: int | None) -> str:
    return "-" if value is None else f"{value}s"


def _resolve(server_name: str, console: Console) -> ServerEndpoint:
    try:
        return settings.resolve_server(server_name)
    except UnknownServerError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e


async def _with_store(
    endpoint: ServerEndpoint,
    console: Console,
    action: Callable[[LockStore], Awaitable[T]],
) -> T:
    """Connect, run action against the lock store, and close."""
    client = RedisCacheClient(
        db=endpoint.db,
        password=endpoint.password,
        connect_timeout=endpoint.connect_timeout,
    )
    store = LockStore(client, keys=LockKeys(settings.key_prefix))
    try:
        if not await store.connect(endpoint.host, endpoint.port):
            console.print(
                f"[red]Couldn't connect to {endpoint.host}:{endpoint.port}[/red]"
            )
            raise typer.Exit(code=1)
        try:
            return await action(store)
        except CacheError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1) from e
    finally:
        await client.close()
