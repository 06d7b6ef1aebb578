"""
Process-local TTL cache for small JSON documents.

Keys are storage paths, so every key of a tenant starts with ``{tenant}/``.
The cache is advisory: the blob store stays the source of truth, and write
paths update the entry they changed so a process reads its own writes.

Another process writing the same tenant is not seen until the entry
expires. Expired entries are dropped only when read again; memory grows with
the number of distinct keys touched for the life of the cache.
"""

import copy
import time
from typing import Any, Callable, Optional

DEFAULT_TTL = 60.0  # seconds


class DocumentCache:
    """TTL memo of parsed documents keyed by storage path."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl: Seconds an entry stays valid after ``set``
            clock: Monotonic time source, injectable for tests
        """
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def init(self) -> None:
        """Start from an empty cache."""
        self._entries = {}

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def get(self, key: str) -> Optional[Any]:
        """Cached value for key, or None if missing or expired."""
        hit = self._entries.get(key)
        if hit is None:
            return None
        stored_at, value = hit
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            return None
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), copy.deepcopy(value))

    def invalidate(self, tenant: str) -> int:
        """
        Remove every entry belonging to a tenant.

        Matches the bare tenant key and keys under ``{tenant}/``, so tenant
        ``u1`` never drops entries of tenant ``u10``.

        Returns:
            Number of entries removed
        """
        prefix = tenant if tenant.endswith("/") else tenant + "/"
        doomed = [k for k in self._entries if k == tenant or k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
