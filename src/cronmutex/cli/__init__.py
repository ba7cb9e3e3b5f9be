"""CLI commands for cronmutex.

Provides command-line interfaces using Typer:
- cronmutex: decide whether this host runs a scheduled task (exit 0/1)
- cronmutex-admin status: show the holder and last run of a mutex
- cronmutex-admin reset: clear a mutex's lock and last-run marker

Usage:
    cronmutex default nightly-report 30 && /usr/local/bin/report
    cronmutex-admin status default nightly-report
"""

import sys

from cronmutex.cli.admin_cmd import app as admin_app
from cronmutex.cli.gate_cmd import app as gate_app
from cronmutex.cli.gate_cmd import run


def main() -> None:
    """Entry point for the gate CLI."""
    sys.exit(run())


def admin_main() -> None:
    """Entry point for the admin CLI."""
    admin_app()


__all__ = ["admin_app", "gate_app", "run", "main", "admin_main"]
