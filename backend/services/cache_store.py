"""
In-memory TTL cache.

Two instances are created by the tracker: a short-lived request cache in
front of every RPC read, and a longer-lived snapshot cache keyed by
identity. Expiry is lazy; an entry is dropped the first time a lookup finds
it stale.
"""

import time
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl

    def expires_at(self) -> float:
        return self.stored_at + self.ttl


class CacheStore(Generic[T]):
    """Key -> value map with a per-entry time-to-live.

    ``clock`` returns seconds; the default is wall time so entries restored
    from disk keep their real age.
    """

    def __init__(
        self,
        default_ttl: float,
        *,
        name: str = "cache",
        clock: Callable[[], float] = time.time,
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self.name = name
        self.default_ttl = float(default_ttl)
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> Optional[T]:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def get_entry(self, key: str) -> Optional[CacheEntry[T]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            return None
        return entry

    def set(
        self,
        key: str,
        value: T,
        ttl: Optional[float] = None,
        *,
        stored_at: Optional[float] = None,
    ) -> CacheEntry[T]:
        """Store ``value``, replacing any previous entry for ``key``."""
        entry = CacheEntry(
            value=value,
            stored_at=self._clock() if stored_at is None else float(stored_at),
            ttl=self.default_ttl if ttl is None else float(ttl),
        )
        self._entries[key] = entry
        return entry

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every stale entry; returns how many were removed."""
        now = self._clock()
        stale = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def entries(self) -> Iterator[tuple[str, CacheEntry[T]]]:
        """Iterate live entries without evicting anything."""
        now = self._clock()
        for key, entry in list(self._entries.items()):
            if entry.is_valid(now):
                yield key, entry

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get_entry(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
