import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict

from club_booking import config
from club_booking.models import AvailabilitySnapshot

logger = logging.getLogger(__name__)


def now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class CacheEntry:
    data: AvailabilitySnapshot
    fetched_at: float  # ms since epoch


@dataclass(frozen=True)
class CachedAvailability:
    data: AvailabilitySnapshot
    is_stale: bool


class AvailabilityCache:
    """In-memory availability snapshots keyed by ISO date, with a fixed staleness threshold.

    Entries are never evicted; the set of dates a user browses is small.
    """

    def __init__(self, ttl_ms: float = config.CACHE_TTL_MS, clock: Callable[[], float] = now_ms):
        self.ttl_ms = ttl_ms
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, date_str: str) -> CachedAvailability | None:
        entry = self._entries.get(date_str)
        if entry is None:
            return None

        age = max(self.clock() - entry.fetched_at, 0)
        return CachedAvailability(data=entry.data, is_stale=age > self.ttl_ms)

    def set(self, date_str: str, data: AvailabilitySnapshot):
        self._entries[date_str] = CacheEntry(data=data, fetched_at=self.clock())
        logger.debug(f"Cached availability for {date_str}")

    def has(self, date_str: str) -> bool:
        return date_str in self._entries

    def clear(self):
        logger.debug(f"Clearing {len(self._entries)} cached dates")
        self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)
