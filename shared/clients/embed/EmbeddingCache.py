"""In-process cache of embedding vectors keyed by (normalized text, model)."""

import hashlib
import math
import threading
import time
from typing import Callable

from pydantic import BaseModel

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_MAX_SIZE_BYTES = 100 * 1024 * 1024
# vectors are accounted as doubles
BYTES_PER_VALUE = 8
EVICTION_SHARE = 0.25


class CachedEmbedding(BaseModel):
    embedding: list[float]
    model: str
    created_at: float
    expires_at: float
    size_bytes: int


class EmbeddingCacheStats(BaseModel):
    size_bytes: int = 0
    entries: int = 0
    created_at: float = 0.0
    hits: int = 0
    misses: int = 0


def make_cache_key(text: str, model: str) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"{model}:{digest}"


class EmbeddingCache:
    """Map (text, model) -> vector with TTL expiry and a byte budget.

    When an insert would exceed max_size_bytes, the oldest quarter of the
    entries is evicted first. A single vector larger than the budget is not cached.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size_bytes <= 0:
            raise ValueError("max_size_bytes must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_size_bytes = max_size_bytes
        self._clock = clock
        self._entries: dict[str, CachedEmbedding] = {}
        self._size = 0
        self._hits = 0
        self._misses = 0
        self._created_at = clock()
        self._lock = threading.Lock()

    def get(self, text: str, model: str) -> list[float] | None:
        key = make_cache_key(text, model)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at <= self._clock():
                self._drop(key)
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return list(entry.embedding)

    def put(self, text: str, model: str, embedding: list[float]) -> None:
        size = len(embedding) * BYTES_PER_VALUE
        if size > self.max_size_bytes:
            return
        key = make_cache_key(text, model)
        with self._lock:
            self._drop(key)
            if self._size + size > self.max_size_bytes:
                self._purge_expired()
            while self._entries and self._size + size > self.max_size_bytes:
                self._evict_oldest()
            now = self._clock()
            self._entries[key] = CachedEmbedding(
                embedding=list(embedding),
                model=model,
                created_at=now,
                expires_at=now + self.ttl_seconds,
                size_bytes=size,
            )
            self._size += size

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._size = 0
            self._hits = 0
            self._misses = 0
            self._created_at = self._clock()

    def get_stats(self) -> EmbeddingCacheStats:
        with self._lock:
            return EmbeddingCacheStats(
                size_bytes=self._size,
                entries=len(self._entries),
                created_at=self._created_at,
                hits=self._hits,
                misses=self._misses,
            )

    def _drop(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._size -= entry.size_bytes

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            self._drop(key)

    def _evict_oldest(self) -> None:
        ordered = sorted(self._entries, key=lambda k: self._entries[k].created_at)
        for key in ordered[: math.ceil(len(ordered) * EVICTION_SHARE)]:
            self._drop(key)
