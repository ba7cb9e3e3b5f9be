"""Cron gate: decide whether this host should run a scheduled task now.

Every host in a fleet schedules the same job and asks the gate before running
it. The gate makes one pass and never waits:

1. Connect to the shared cache (failure: skip)
2. Try once to acquire a short-lived lock for the job (contended: skip)
3. Read the last run time from the lock's metadata sidecar
4. Run if there is no last run or at least min_delay seconds have passed,
   recording the current time as the new last run
5. Release the lock in every case once it was acquired

The lock only serializes the decision among schedulers firing at nearly the
same moment, so its TTL stays small. The metadata sidecar carries the
"not twice within min_delay" guarantee with its own much longer TTL, which
absorbs clock drift between schedulers.

Any ambiguous condition results in a skip.

Example:
    gate = CronGate(LockStore(RedisCacheClient()))
    decision = await gate.run("127.0.0.1", 6379, "nightly-report", 30)
    sys.exit(decision.exit_code)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from cronmutex.cache.client import MAX_RELATIVE_TTL, CacheError
from cronmutex.distributed.lock import LockStore

logger = logging.getLogger(__name__)

EXIT_RUN = 0
EXIT_SKIP = 1

DEFAULT_LOCK_TTL = 10  # Seconds
DEFAULT_METADATA_TTL = MAX_RELATIVE_TTL  # 30 days


class GateOutcome(str, Enum):
    """Why the gate decided the way it did."""

    RUN = "run"
    CONNECT_FAILED = "connect_failed"
    CONTENDED = "contended"
    TOO_SOON = "too_soon"
    CACHE_ERROR = "cache_error"


@dataclass(frozen=True)
class GateDecision:
    """Result of a single gate evaluation."""

    lock_name: str
    outcome: GateOutcome
    last_run: float | None = None

    @property
    def should_run(self) -> bool:
        return self.outcome is GateOutcome.RUN

    @property
    def exit_code(self) -> int:
        return EXIT_RUN if self.should_run else EXIT_SKIP


def min_delay_elapsed(last_run: float | None, now: float, min_delay: int) -> bool:
    """Check that the last run is at least min_delay seconds old.

    A missing last run always counts as elapsed. A last run exactly
    min_delay seconds ago counts as elapsed.
    """
    if last_run is None:
        return True
    return (now - last_run) >= min_delay


class CronGate:
    """Run/skip policy for a fleet-wide scheduled task.

    Args:
        store: Lock store wrapping the shared cache
        lock_ttl: Seconds the decision lock lives if never released
        metadata_ttl: Seconds the last-run marker is kept
        clock: Returns the current Unix time (defaults to time.time)
        log: Logger for diagnostics (defaults to the module logger)
    """

    def __init__(
        self,
        store: LockStore,
        lock_ttl: int = DEFAULT_LOCK_TTL,
        metadata_ttl: int = DEFAULT_METADATA_TTL,
        clock: Callable[[], float] = time.time,
        log: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.lock_ttl = lock_ttl
        self.metadata_ttl = metadata_ttl
        self.clock = clock
        self.log = log or logger

    async def run(self, host: str, port: int, name: str, min_delay: int) -> GateDecision:
        """Connect to the cache at host:port, then decide."""
        if not await self.store.connect(host, port):
            return self._finish(GateDecision(name, GateOutcome.CONNECT_FAILED))
        return await self.decide(name, min_delay)

    async def decide(self, name: str, min_delay: int) -> GateDecision:
        """Decide for an already connected store.

        Metadata is neither read nor written unless the lock was acquired.
        """
        if min_delay < 0:
            raise ValueError(f"min_delay must be >= 0, got {min_delay}")

        if not await self.store.acquire(name, self.lock_ttl):
            return self._finish(GateDecision(name, GateOutcome.CONTENDED))

        try:
            decision = await self._check_delay(name, min_delay)
            if decision.should_run:
                await self._record_run(name)
        finally:
            await self._release(name)

        return self._finish(decision)

    async def _check_delay(self, name: str, min_delay: int) -> GateDecision:
        try:
            payload = await self.store.get_metadata(name)
        except CacheError as e:
            self.log.warning(f"Reading last run of '{name}' failed: {e}")
            return GateDecision(name, GateOutcome.CACHE_ERROR)

        if payload is None:
            return GateDecision(name, GateOutcome.RUN)

        try:
            last_run = float(payload)
        except ValueError:
            self.log.warning(f"Unreadable last run of '{name}': {payload!r}")
            return GateDecision(name, GateOutcome.CACHE_ERROR)

        now = self.clock()
        if min_delay_elapsed(last_run, now, min_delay):
            return GateDecision(name, GateOutcome.RUN, last_run)

        self.log.debug(
            f"'{name}' last ran {now - last_run:.0f}s ago, min delay is {min_delay}s"
        )
        return GateDecision(name, GateOutcome.TOO_SOON, last_run)

    async def _record_run(self, name: str) -> None:
        # Best effort: the decision to run stands even if this fails
        payload = str(int(self.clock()))
        try:
            stored = await self.store.set_metadata(name, payload, self.metadata_ttl)
        except CacheError as e:
            self.log.info(f"Recording last run of '{name}' failed: {e}")
            return
        if not stored:
            self.log.info(f"Recording last run of '{name}' failed")

    async def _release(self, name: str) -> None:
        # The lock TTL releases it eventually if this fails
        try:
            released = await self.store.release(name)
        except CacheError as e:
            self.log.info(f"Releasing lock '{name}' failed: {e}")
            return
        if not released:
            self.log.info(f"Releasing lock '{name}' failed")

    def _finish(self, decision: GateDecision) -> GateDecision:
        self.log.debug(f"Decision for '{decision.lock_name}': {decision.outcome.value}")
        return decision
