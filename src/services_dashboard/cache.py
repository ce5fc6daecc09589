# app/cache.py
"""Tag-based invalidation for service listing reads.

Every successful mutation emits an invalidation for one or more tags.
Anything that cached a read under one of those tags is dropped and
recomputed on next access.

Invalidation only reaches the cache of the process that made the write.
Entries therefore also expire after ``max_age`` seconds, which bounds how
long another worker sharing the same database can serve a stale listing.
"""
import logging
import os
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable, Iterable
from typing import Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Tag carried by every cached service query.
SERVICES_TAG = "services"
# Tag for the rendered dashboard listing page.
SERVICES_PAGE_TAG = "/dashboard/services"

SERVICE_CACHE_TTL_SECONDS = float(os.getenv("SERVICE_CACHE_TTL_SECONDS", "5"))
SERVICE_CACHE_MAX_ENTRIES = int(os.getenv("SERVICE_CACHE_MAX_ENTRIES", "256"))


class InvalidationNotifier(Protocol):
    """Receives invalidation events from the service gateway."""

    def invalidate(self, *tags: str) -> None: ...


class TaggedCache:
    """Thread-safe, bounded memo of read results, each stored under a set of tags.

    ``max_age`` of zero disables caching; ``None`` keeps entries until invalidated.
    Once ``max_entries`` is exceeded the least recently used entry is evicted.
    """

    def __init__(
        self,
        max_age: float | None = SERVICE_CACHE_TTL_SECONDS,
        max_entries: int = SERVICE_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_age = max_age
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (value, stored_at)
        self._entries: OrderedDict[Hashable, tuple[object, float]] = OrderedDict()
        self._tags: dict[Hashable, frozenset[str]] = {}
        self._generation = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def fetch(self, key: Hashable, loader: Callable[[], T], tags: Iterable[str]) -> T:
        """Return the cached value for ``key``, loading it on a miss.

        If ``loader`` raises, nothing is stored and the error propagates.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                value, stored_at = entry
                if not self._expired(stored_at):
                    self._entries.move_to_end(key)
                    return value  # type: ignore[return-value]
                self._drop(key)
            generation = self._generation

        value = loader()
        if self.max_age == 0:
            return value
        with self._lock:
            # an invalidation raced the load; return the value but do not keep it
            if generation == self._generation:
                self._entries[key] = (value, self._clock())
                self._entries.move_to_end(key)
                self._tags[key] = frozenset(tags)
                while len(self._entries) > self.max_entries:
                    oldest = next(iter(self._entries))
                    self._drop(oldest)
        return value

    def invalidate(self, *tags: str) -> None:
        wanted = set(tags)
        with self._lock:
            self._generation += 1
            stale = [key for key, entry_tags in self._tags.items() if entry_tags & wanted]
            for key in stale:
                self._drop(key)
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached read(s) for tags {sorted(wanted)}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._tags.clear()

    def _expired(self, stored_at: float) -> bool:
        return self.max_age is not None and self._clock() - stored_at >= self.max_age

    def _drop(self, key: Hashable) -> None:
        del self._entries[key]
        del self._tags[key]
