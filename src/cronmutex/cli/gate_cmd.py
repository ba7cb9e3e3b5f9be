"""CLI command that gates a scheduled task.

Prints nothing and exits 0 when this host should run the task, exits 1
otherwise. Chain it with the task using the shell && operator on every
host of the fleet:

Usage:
    cronmutex default nightly-report 30 && /usr/local/bin/report
    cronmutex default nightly-report 30 --verbose
    cronmutex cache-eu billing-sync 300 --safe-release --json-logs

Every failure (bad arguments, unknown server, unreachable cache, contended
lock, min delay not elapsed) exits 1.
"""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

import click
import typer

from cronmutex.cache.client import MAX_RELATIVE_TTL, RedisCacheClient
from cronmutex.cache.keys import LockKeys
from cronmutex.config import ServerEndpoint, UnknownServerError, settings
from cronmutex.distributed.gate import EXIT_SKIP, CronGate, GateDecision
from cronmutex.distributed.lock import LockStore
from cronmutex.observability.logging import LogContext, configure_logging

logger = logging.getLogger(__name__)

# Newer typer releases raise parse errors from their own bundled copy of
# click, which does not derive from the installed click's exceptions.
_USAGE_ERRORS: tuple[type[Exception], ...] = tuple(
    {click.ClickException, getattr(typer, "TyperException", click.ClickException)}
)
_ABORTS: tuple[type[BaseException], ...] = tuple({click.exceptions.Abort, typer.Abort})

app = typer.Typer(
    name="cronmutex",
    help="Let exactly one host of a fleet run a scheduled task.",
    add_completion=False,
)


@app.command()
def gate(
    server_name: str = typer.Argument(
        ...,
        help="Cache server name from the configured server table",
    ),
    mutex_name: str = typer.Argument(
        ...,
        help="Unique name for the mutex",
    ),
    min_delay: int = typer.Argument(
        ...,
        min=0,
        max=MAX_RELATIVE_TTL,
        help="Minimum seconds since the last run, max 2592000 (30 days)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Write diagnostics to stderr",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Write diagnostics as JSON lines",
    ),
    lock_ttl: int | None = typer.Option(
        None,
        "--lock-ttl",
        min=1,
        max=MAX_RELATIVE_TTL,
        help="Seconds the decision lock lives if never released",
    ),
    safe_release: bool = typer.Option(
        False,
        "--safe-release",
        help="Release the lock only if it still holds our token",
    ),
) -> GateDecision | None:
    """Exit 0 if this host should run the task now, 1 otherwise.

    Example: cronmutex default randommutexname 30 && /bin/task
    """
    configure_logging(
        json_format=json_logs or settings.log_json,
        level="DEBUG" if verbose else settings.log_level,
    )

    try:
        endpoint = settings.resolve_server(server_name)
    except UnknownServerError as e:
        logger.error(f"{e}; add it to CRONMUTEX_SERVERS")
        return None

    with LogContext(mutex=mutex_name, invocation_id=uuid4().hex[:8]):
        return asyncio.run(
            _run_gate(
                endpoint,
                mutex_name,
                min_delay,
                lock_ttl or settings.lock_ttl,
                safe_release or settings.safe_release,
            )
        )


async def _run_gate(
    endpoint: ServerEndpoint,
    mutex_name: str,
    min_delay: int,
    lock_ttl: int,
    safe_release: bool,
) -> GateDecision:
    """Async implementation of the gate command."""
    client = RedisCacheClient(
        db=endpoint.db,
        password=endpoint.password,
        connect_timeout=endpoint.connect_timeout,
    )
    store = LockStore(
        client,
        keys=LockKeys(settings.key_prefix),
        compare_and_delete=safe_release,
    )
    cron_gate = CronGate(store, lock_ttl=lock_ttl, metadata_ttl=settings.metadata_ttl)

    try:
        return await cron_gate.run(endpoint.host, endpoint.port, mutex_name, min_delay)
    finally:
        await client.close()


def run(args: list[str] | None = None) -> int:
    """Invoke the gate command and map the outcome to an exit status.

    Usage errors and --help exit 1 as well, so a misconfigured crontab line
    never runs its task.
    """
    try:
        result = app(args=args, prog_name="cronmutex", standalone_mode=False)
    except _ABORTS:
        return EXIT_SKIP
    except _USAGE_ERRORS as e:
        show = getattr(e, "show", None)
        if callable(show):
            show()
        else:
            typer.echo(f"Error: {e}", err=True)
        return EXIT_SKIP

    if isinstance(result, GateDecision):
        return result.exit_code
    return EXIT_SKIP
