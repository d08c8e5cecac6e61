"""Simple cache abstractions."""

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Cache(Protocol):
    """Cache interface for reference lookup results."""

    def get(self, key: str) -> tuple[bool, object | None]:
        """Return ``(hit, value)``; cached ``None`` values count as hits."""

    def set(self, key: str, value: object | None, ttl_seconds: int) -> None:
        """Store a value with a TTL in seconds."""


@dataclass
class _CacheEntry:
    value: object | None
    expires_at: datetime


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class InMemoryCache(Cache):
    """Bounded in-memory TTL cache evicting the oldest entries first."""

    def __init__(
        self,
        max_entries: int = 1024,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._max_entries = max_entries
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> tuple[bool, object | None]:
        """Return a cached value if it hasn't expired."""
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        if self._clock() >= entry.expires_at:
            self._entries.pop(key, None)
            return False, None
        return True, entry.value

    def set(self, key: str, value: object | None, ttl_seconds: int) -> None:
        """Store a value, evicting the oldest entry when full."""
        expires_at = self._clock() + timedelta(seconds=ttl_seconds)
        self._entries.pop(key, None)
        self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
