"""Cache key schema for cronmutex.

Key format:
- lock record: {prefix}{name}
- metadata sidecar: {prefix}{name}-metadata

The prefix is empty by default so keys written by other deployments of the
same tool on a shared cache are compatible. Set a prefix to namespace a
shared Redis instance.
"""

from __future__ import annotations

METADATA_SUFFIX = "-metadata"


class LockKeys:
    """Key generator for lock records and their metadata sidecars."""

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def lock(self, name: str) -> str:
        """Key holding the ownership token of a lock."""
        return f"{self.prefix}{name}"

    def metadata(self, name: str) -> str:
        """Key holding the last-run metadata of a lock."""
        return f"{self.prefix}{name}{METADATA_SUFFIX}"
