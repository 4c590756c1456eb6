"""
In-memory read-through cache for the area listing.

The listing joins every area against every mark, and the map polls it
after each click, so bursts of requests would otherwise recompute the same
aggregate. A short TTL (2 seconds) keeps counts close to live while
collapsing those bursts into one query.

Concurrency:
The listing and the time it was computed are published together as one
immutable snapshot, swapped under a lock. Readers never see a listing
paired with another listing's timestamp. Concurrent misses each query the
store and publish their own result (last writer wins).
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

from visitmap.store import AreaCount, AreaStore

logger = logging.getLogger(__name__)

Snapshot = Tuple[Tuple[AreaCount, ...], float]


class AreaCache:
    """
    Thread-safe cache of ``AreaStore.list_areas()``.

    Args:
        store: Data access layer to read through to.
        ttl_seconds: Freshness window.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        store: AreaStore,
        ttl_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

        self._snapshot: Optional[Snapshot] = None
        self._lock = threading.Lock()

        # Statistics
        self._hits = 0
        self._misses = 0

    def _fresh_snapshot(self) -> Optional[Snapshot]:
        with self._lock:
            snapshot = self._snapshot
        if snapshot is None:
            return None
        if self._clock() - snapshot[1] < self.ttl_seconds:
            return snapshot
        return None

    def get_areas(self) -> List[AreaCount]:
        """
        Return the area listing, recomputing it when older than the TTL.

        A failed recomputation propagates its error and leaves the
        previous snapshot in place.
        """
        snapshot = self._fresh_snapshot()
        if snapshot is not None:
            with self._lock:
                self._hits += 1
            return list(snapshot[0])

        with self._lock:
            self._misses += 1

        areas = tuple(self.store.list_areas())
        computed_at = self._clock()

        with self._lock:
            self._snapshot = (areas, computed_at)

        logger.debug(f'Area cache refreshed with {len(areas)} areas')
        return list(areas)

    def invalidate(self) -> None:
        """Drop the cached listing; the next read goes to the store."""
        with self._lock:
            self._snapshot = None

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                'entries': len(self._snapshot[0]) if self._snapshot else 0,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / total if total > 0 else 0,
                'last_refresh': self._snapshot[1] if self._snapshot else None,
            }
