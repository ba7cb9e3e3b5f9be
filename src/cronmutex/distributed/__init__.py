"""Distributed coordination primitives for cronmutex.

Provides:
- Non-blocking named locks with read-back ownership verification
- Metadata sidecars that outlive the lock records
- The cron gate that lets one host of a fleet run a scheduled task

Example:
    from cronmutex.distributed import CronGate, LockStore

    gate = CronGate(LockStore(client))
    decision = await gate.run(host, port, "nightly-report", 30)
"""

from cronmutex.distributed.gate import (
    DEFAULT_LOCK_TTL,
    DEFAULT_METADATA_TTL,
    EXIT_RUN,
    EXIT_SKIP,
    CronGate,
    GateDecision,
    GateOutcome,
    min_delay_elapsed,
)
from cronmutex.distributed.lock import LockStatus, LockStore, generate_token

__all__ = [
    "CronGate",
    "GateDecision",
    "GateOutcome",
    "min_delay_elapsed",
    "DEFAULT_LOCK_TTL",
    "DEFAULT_METADATA_TTL",
    "EXIT_RUN",
    "EXIT_SKIP",
    "LockStore",
    "LockStatus",
    "generate_token",
]
