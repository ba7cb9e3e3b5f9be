"""Cache layer for cronmutex.

Provides the shared-cache primitives the lock protocol is built on:
- CacheClient protocol (create-if-absent, get, set, replace, delete)
- Redis implementation with memcached-style TTL semantics
- Key schema for lock records and metadata sidecars
"""

from cronmutex.cache.client import (
    MAX_RELATIVE_TTL,
    CacheClient,
    CacheError,
    RedisCacheClient,
    expiry_kwargs,
)
from cronmutex.cache.keys import METADATA_SUFFIX, LockKeys

__all__ = [
    "CacheClient",
    "CacheError",
    "RedisCacheClient",
    "expiry_kwargs",
    "MAX_RELATIVE_TTL",
    "LockKeys",
    "METADATA_SUFFIX",
]
