"""Cache client used by the lock store.

Defines the small set of primitives the lock protocol needs and a Redis
implementation of them on top of the redis-py async client:

- add: create-if-absent (SET NX)
- get / set / replace (SET XX) / delete
- delete_if_value: compare-and-delete via a Lua script
- ttl: remaining lifetime of a key

TTLs follow the memcached convention the tool was built around: seconds,
0 means never expire, and values above MAX_RELATIVE_TTL are absolute Unix
timestamps.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Protocol, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# 30 days; larger TTLs are absolute expiry timestamps
MAX_RELATIVE_TTL = 2_592_000

# Only delete if the stored value is ours
DELETE_IF_VALUE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class CacheError(Exception):
    """A cache operation failed after the connection was established."""

    def __init__(self, operation: str, key: str, detail: str) -> None:
        self.operation = operation
        self.key = key
        self.detail = detail
        super().__init__(f"{operation}({key!r}) failed: {detail}")


class CacheClient(Protocol):
    """Operations the lock store needs from a shared cache."""

    async def connect(self, host: str, port: int) -> bool: ...
    async def get(self, key: str) -> str | None: ...
    async def add(self, key: str, value: str, ttl: int) -> bool: ...
    async def set(self, key: str, value: str, ttl: int) -> bool: ...
    async def replace(self, key: str, value: str, ttl: int) -> bool: ...
    async def delete(self, key: str) -> bool: ...
    async def delete_if_value(self, key: str, value: str) -> bool: ...
    async def ttl(self, key: str) -> int | None: ...
    async def close(self) -> None: ...


def expiry_kwargs(ttl: int) -> dict[str, int]:
    """Translate a TTL into redis-py SET expiry arguments.

    Args:
        ttl: Seconds to live, 0 for no expiry, or an absolute Unix
            timestamp when larger than MAX_RELATIVE_TTL.

    Raises:
        ValueError: If ttl is negative.
    """
    if ttl < 0:
        raise ValueError(f"TTL must be >= 0, got {ttl}")
    if ttl == 0:
        return {}
    if ttl <= MAX_RELATIVE_TTL:
        return {"ex": ttl}
    return {"exat": ttl}


@contextmanager
def _translate_errors(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        raise CacheError(operation, key, str(e)) from e


class RedisCacheClient:
    """CacheClient backed by a single Redis server.

    Every operation returns a failure value (False or None) without touching
    the network until connect() has succeeded.

    Args:
        db: Redis logical database number
        password: Optional AUTH password
        connect_timeout: Socket connect timeout in seconds (None = OS default)
    """

    def __init__(
        self,
        db: int = 0,
        password: str | None = None,
        connect_timeout: float | None = None,
    ) -> None:
        self.db = db
        self.password = password
        self.connect_timeout = connect_timeout
        self._client: Redis | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self, host: str, port: int) -> bool:
        """Open the connection and verify it with PING. Never retries."""
        if self._client is not None:
            await self.close()

        client = redis.Redis(
            host=host,
            port=port,
            db=self.db,
            password=self.password,
            socket_connect_timeout=self.connect_timeout,
            decode_responses=True,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error(f"Couldn't connect to Redis at {host}:{port}: {e}")
            await client.aclose()
            return False

        self._client = client
        return True

    async def get(self, key: str) -> str | None:
        if self._client is None:
            return None
        with _translate_errors("get", key):
            value = await self._client.get(key)
        return cast(str | None, value)

    async def add(self, key: str, value: str, ttl: int) -> bool:
        expiry = expiry_kwargs(ttl)
        if self._client is None:
            return False
        with _translate_errors("add", key):
            return bool(await self._client.set(key, value, nx=True, **expiry))

    async def set(self, key: str, value: str, ttl: int) -> bool:
        expiry = expiry_kwargs(ttl)
        if self._client is None:
            return False
        with _translate_errors("set", key):
            return bool(await self._client.set(key, value, **expiry))

    async def replace(self, key: str, value: str, ttl: int) -> bool:
        expiry = expiry_kwargs(ttl)
        if self._client is None:
            return False
        with _translate_errors("replace", key):
            return bool(await self._client.set(key, value, xx=True, **expiry))

    async def delete(self, key: str) -> bool:
        if self._client is None:
            return False
        with _translate_errors("delete", key):
            return bool(await self._client.delete(key))

    async def delete_if_value(self, key: str, value: str) -> bool:
        if self._client is None:
            return False
        with _translate_errors("delete_if_value", key):
            result = await cast(
                Awaitable[int],
                self._client.eval(DELETE_IF_VALUE_SCRIPT, 1, key, value),
            )
        return bool(result)

    async def ttl(self, key: str) -> int | None:
        """Remaining seconds to live, or None if absent or never expiring."""
        if self._client is None:
            return None
        with _translate_errors("ttl", key):
            remaining = await self._client.ttl(key)
        return remaining if remaining >= 0 else None

    async def close(self) -> None:
        """Close the connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
