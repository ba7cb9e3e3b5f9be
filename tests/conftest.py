"""Global pytest configuration and fixtures.

Provides an in-memory cache that mimics the shared cache server, with a
controllable clock for TTL expiry, so lock and gate behaviour can be tested
with several independent clients racing against one store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from cronmutex.cache.client import MAX_RELATIVE_TTL, CacheError


class FakeClock:
    """Manually advanced Unix clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCacheServer:
    """Shared key-value state with TTLs, seen by every FakeCacheClient.

    Args:
        clock: Time source for expiry
        atomic_add: When False, add() overwrites existing keys and reports
            success, like a backend whose create-if-absent races
    """

    def __init__(self, clock: FakeClock, atomic_add: bool = True) -> None:
        self.clock = clock
        self.atomic_add = atomic_add
        self.reachable = True
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self._data: dict[str, tuple[str, float | None]] = {}

    def _expires_at(self, ttl: int) -> float | None:
        if ttl < 0:
            raise ValueError(f"TTL must be >= 0, got {ttl}")
        if ttl == 0:
            return None
        if ttl <= MAX_RELATIVE_TTL:
            return self.clock() + ttl
        return float(ttl)

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self._data[key]
            return None
        return value

    def peek(self, key: str) -> str | None:
        """Read a key without recording a call."""
        return self._live(key)

    def put(self, key: str, value: str, ttl: int = 0) -> None:
        """Seed a key without recording a call."""
        self._data[key] = (value, self._expires_at(ttl))

    def remaining(self, key: str) -> int | None:
        if self._live(key) is None:
            return None
        expires_at = self._data[key][1]
        return None if expires_at is None else int(expires_at - self.clock())

    async def execute(self, operation: str, key: str, action: Callable[[], object]) -> object:
        # Yield first so concurrent clients interleave between operations
        await asyncio.sleep(0)
        self.calls.append((operation, key))
        if operation in self.failing:
            raise CacheError(operation, key, "simulated failure")
        return action()

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]


class FakeCacheClient:
    """CacheClient over a FakeCacheServer."""

    def __init__(self, server: FakeCacheServer) -> None:
        self.server = server
        self.connected = False
        self.closed = False
        self.connect_calls: list[tuple[str, int]] = []

    async def connect(self, host: str, port: int) -> bool:
        self.connect_calls.append((host, port))
        self.connected = self.server.reachable
        return self.connected

    async def get(self, key: str) -> str | None:
        if not self.connected:
            return None
        return await self.server.execute("get", key, lambda: self.server._live(key))  # type: ignore[return-value]

    async def add(self, key: str, value: str, ttl: int) -> bool:
        if not self.connected:
            return False

        def action() -> bool:
            if self.server.atomic_add and self.server._live(key) is not None:
                return False
            self.server.put(key, value, ttl)
            return True

        return await self.server.execute("add", key, action)  # type: ignore[return-value]

    async def set(self, key: str, value: str, ttl: int) -> bool:
        if not self.connected:
            return False

        def action() -> bool:
            self.server.put(key, value, ttl)
            return True

        return await self.server.execute("set", key, action)  # type: ignore[return-value]

    async def replace(self, key: str, value: str, ttl: int) -> bool:
        if not self.connected:
            return False

        def action() -> bool:
            if self.server._live(key) is None:
                return False
            self.server.put(key, value, ttl)
            return True

        return await self.server.execute("replace", key, action)  # type: ignore[return-value]

    async def delete(self, key: str) -> bool:
        if not self.connected:
            return False

        def action() -> bool:
            existed = self.server._live(key) is not None
            self.server._data.pop(key, None)
            return existed

        return await self.server.execute("delete", key, action)  # type: ignore[return-value]

    async def delete_if_value(self, key: str, value: str) -> bool:
        if not self.connected:
            return False

        def action() -> bool:
            if self.server._live(key) != value:
                return False
            self.server._data.pop(key, None)
            return True

        return await self.server.execute("delete_if_value", key, action)  # type: ignore[return-value]

    async def ttl(self, key: str) -> int | None:
        if not self.connected:
            return None
        return await self.server.execute("ttl", key, lambda: self.server.remaining(key))  # type: ignore[return-value]

    async def close(self) -> None:
        self.closed = True
        self.connected = False


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_server(clock: FakeClock) -> FakeCacheServer:
    return FakeCacheServer(clock)


@pytest.fixture
def make_client(cache_server: FakeCacheServer) -> Callable[..., FakeCacheClient]:
    """Factory for clients of the shared fake server, connected by default."""

    def factory(connected: bool = True) -> FakeCacheClient:
        client = FakeCacheClient(cache_server)
        client.connected = connected
        return client

    return factory


@pytest.fixture
def cache_client(make_client: Callable[..., FakeCacheClient]) -> FakeCacheClient:
    return make_client()
