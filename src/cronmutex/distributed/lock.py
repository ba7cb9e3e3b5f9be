"""Non-blocking named locks on a shared cache.

A lock is a cache key whose value is an ownership token. Acquisition is a
two-phase optimistic protocol:

1. Create the key with a fresh token, only if it does not exist yet
2. Read the key back; only the process that finds its own token owns the lock

The read-back costs a round trip but guards against cache backends whose
create-if-absent is not atomic under concurrent writers. A lock is released
explicitly or by its TTL.

Each lock has a metadata sidecar key with its own TTL that outlives the lock
record. The cron gate stores the last successful run time there.

Example:
    store = LockStore(RedisCacheClient())
    if await store.connect("127.0.0.1", 6379) and await store.acquire("job", 10):
        try:
            ...
        finally:
            await store.release("job")
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass
from uuid import uuid4

from cronmutex.cache.client import CacheClient, CacheError
from cronmutex.cache.keys import LockKeys

logger = logging.getLogger(__name__)


def generate_token() -> str:
    """Generate an ownership token unique across hosts and calls."""
    return f"{socket.gethostname()}-{os.getpid()}-{uuid4().hex}"


@dataclass
class LockStatus:
    """Snapshot of a lock and its metadata sidecar."""

    name: str
    holder: str | None
    lock_ttl: int | None
    metadata: str | None
    metadata_ttl: int | None

    @property
    def locked(self) -> bool:
        return self.holder is not None


class LockStore:
    """Acquire, verify and release named locks, and manage their metadata.

    Args:
        client: Cache client handle owned by this store
        keys: Key schema (defaults to unprefixed keys)
        compare_and_delete: Release only if the stored token is still ours.
            Off by default, which deletes the lock key unconditionally.
        log: Logger for diagnostics (defaults to the module logger)
    """

    def __init__(
        self,
        client: CacheClient,
        keys: LockKeys | None = None,
        compare_and_delete: bool = False,
        log: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.keys = keys or LockKeys()
        self.compare_and_delete = compare_and_delete
        self.log = log or logger
        self._tokens: dict[str, str] = {}

    def token_for(self, name: str) -> str | None:
        """Token this store wrote for a lock it currently believes it holds."""
        return self._tokens.get(name)

    async def connect(self, host: str, port: int) -> bool:
        self.log.debug(f"Connecting to {host}:{port}")
        if not await self.client.connect(host, port):
            self.log.debug(f"Connection to {host}:{port} failed")
            return False
        self.log.debug(f"Connected to {host}:{port}")
        return True

    async def acquire(self, name: str, ttl: int) -> bool:
        """Try once to acquire the lock. Never blocks.

        Args:
            name: Lock name
            ttl: Seconds until the lock expires if never released

        Returns:
            True only if this call created the key and read back its own token.
        """
        key = self.keys.lock(name)
        token = generate_token()
        self.log.debug(f"Acquiring lock '{name}' (ttl={ttl}s) with token {token}")

        try:
            if not await self.client.add(key, token, ttl):
                self.log.debug(f"Lock '{name}' is already held")
                return False

            stored = await self.client.get(key)
        except CacheError as e:
            self.log.warning(f"Acquiring lock '{name}' failed: {e}")
            return False

        if stored != token:
            self.log.debug(f"Lock '{name}' read-back mismatch: wrote {token}, found {stored}")
            return False

        self._tokens[name] = token
        self.log.debug(f"Acquired lock '{name}'")
        return True

    async def release(self, name: str) -> bool:
        """Release the lock.

        Without compare-and-delete the key is removed unconditionally, so call
        this only after a successful acquire() for the same name.
        """
        key = self.keys.lock(name)
        token = self._tokens.pop(name, None)

        if self.compare_and_delete and token is not None:
            released = await self.client.delete_if_value(key, token)
        else:
            released = await self.client.delete(key)

        if released:
            self.log.debug(f"Released lock '{name}'")
        else:
            self.log.debug(f"Lock '{name}' was not released (missing or not ours)")
        return released

    async def get_metadata(self, name: str) -> str | None:
        """Read the metadata sidecar. Absence is a normal result."""
        value = await self.client.get(self.keys.metadata(name))
        if value is None:
            self.log.debug(f"No metadata for lock '{name}'")
        else:
            self.log.debug(f"Metadata for lock '{name}': {value}")
        return value

    async def set_metadata(self, name: str, payload: str, ttl: int) -> bool:
        """Write the metadata sidecar, updating in place when it exists."""
        key = self.keys.metadata(name)
        stored = await self.client.replace(key, payload, ttl)
        if not stored:
            stored = await self.client.set(key, payload, ttl)

        if stored:
            self.log.debug(f"Stored metadata for lock '{name}': {payload} (ttl={ttl}s)")
        else:
            self.log.debug(f"Storing metadata for lock '{name}' failed")
        return stored

    async def describe(self, name: str) -> LockStatus:
        """Return the current state of a lock and its metadata."""
        lock_key = self.keys.lock(name)
        metadata_key = self.keys.metadata(name)
        return LockStatus(
            name=name,
            holder=await self.client.get(lock_key),
            lock_ttl=await self.client.ttl(lock_key),
            metadata=await self.client.get(metadata_key),
            metadata_ttl=await self.client.ttl(metadata_key),
        )

    async def reset(self, name: str) -> bool:
        """Delete both the lock record and its metadata.

        Returns:
            True if at least one of the two keys existed.
        """
        self._tokens.pop(name, None)
        removed_lock = await self.client.delete(self.keys.lock(name))
        removed_metadata = await self.client.delete(self.keys.metadata(name))
        self.log.info(f"Reset lock '{name}' (lock={removed_lock}, metadata={removed_metadata})")
        return removed_lock or removed_metadata
