"""Time-bounded response cache used as a degraded-mode fallback."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

CACHE_MAX_AGE_SECONDS = 5 * 60


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Most recent successful result for one key."""

    data: T
    stored_at: float


@dataclass(frozen=True)
class CacheLookup(Generic[T]):
    """Cached value plus whether it is still inside the freshness window."""

    data: T
    is_fresh: bool
    age: float


class ResponseCache(Generic[T]):
    """Last-success cache keyed by operation subject.

    Stale entries are never evicted; they stay available as a last-resort
    fallback and ``get`` reports them with ``is_fresh=False``.
    """

    def __init__(
        self,
        *,
        max_age: float = CACHE_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_age < 0:
            raise ValueError("max_age must be >= 0")
        self.max_age = max_age
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def put(self, key: str, data: T) -> None:
        """Store ``data`` for ``key``, replacing any previous entry."""
        self._entries[key] = CacheEntry(data=data, stored_at=self._clock())

    def get(self, key: str) -> CacheLookup[T] | None:
        """Return the cached value for ``key`` or ``None`` when never stored."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        age = self._clock() - entry.stored_at
        return CacheLookup(data=entry.data, is_fresh=age < self.max_age, age=age)
