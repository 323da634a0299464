"""In-process cache of collection metadata with TTL expiry and LRU eviction."""

import threading
import time
from collections import OrderedDict
from typing import Callable

from shared.models.collection import CachedCollectionEntry, VectorCollection

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_MAX_ENTRIES = 100


class CollectionCache:
    """Map collection name -> CachedCollectionEntry.

    Entries expire ttl_seconds after insertion regardless of access. When more
    than max_entries are cached, the least recently accessed entry is evicted.
    All methods are safe to call from several threads.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CachedCollectionEntry] = OrderedDict()
        self._lock = threading.RLock()

    def get(self, name: str) -> VectorCollection | None:
        """Return the cached collection, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                return None
            now = self._clock()
            if entry.expires_at <= now:
                del self._entries[name]
                return None
            entry.access_count += 1
            entry.last_accessed_at = now
            self._entries.move_to_end(name)
            return entry.collection

    def get_entry(self, name: str) -> CachedCollectionEntry | None:
        """Return the raw entry without touching its access statistics."""
        with self._lock:
            entry = self._entries.get(name)
            if entry is not None and entry.expires_at <= self._clock():
                del self._entries[name]
                return None
            return entry

    def put(self, collection: VectorCollection) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._entries[collection.name] = CachedCollectionEntry(
                collection=collection,
                cached_at=now,
                expires_at=now + self.ttl_seconds,
                access_count=0,
                last_accessed_at=now,
            )
            self._entries.move_to_end(collection.name)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, name: str) -> None:
        with self._lock:
            self._entries.pop(name, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._entries)

    def _purge_expired(self, now: float) -> None:
        expired = [name for name, entry in self._entries.items() if entry.expires_at <= now]
        for name in expired:
            del self._entries[name]
