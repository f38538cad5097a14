import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Coroutine, Dict, Set

from club_booking import config
from club_booking.api import ApiError, ClubApiClient
from club_booking.cache import AvailabilityCache
from club_booking.models import AvailabilitySnapshot

logger = logging.getLogger(__name__)

Subscriber = Callable[[AvailabilitySnapshot], None]


def add_days(date_str: str, days: int) -> str:
    return (date.fromisoformat(date_str) + timedelta(days=days)).isoformat()


@dataclass(frozen=True)
class AvailabilityResult:
    data: AvailabilitySnapshot
    from_cache: bool


class AvailabilityService:
    """Cache-first access to court availability.

    Reads are served stale-while-revalidate: a stale entry is returned at once and
    refreshed in a detached task. Range fetches are deduplicated by
    ``(start_date, num_days)`` while in flight, and every cache write notifies the
    subscribers of that date.

    Must be used from a single asyncio event loop. Blocking HTTP calls are handed to
    a worker thread; all cache and subscriber state stays on the loop.
    """

    def __init__(
        self,
        client: ClubApiClient,
        cache: AvailabilityCache | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.client = client
        self.cache = cache if cache is not None else AvailabilityCache()
        self.today = today
        self._pending_fetches: Set[str] = set()
        self._subscribers: Dict[str, Set[Subscriber]] = {}
        self._background_tasks: Set[asyncio.Task] = set()

    async def get_for_date(self, date_str: str) -> AvailabilityResult:
        """Returns availability for one date, fetching only when nothing is cached."""
        cached = self.cache.get(date_str)

        if cached and not cached.is_stale:
            logger.debug(f"Cache hit for {date_str}")
            return AvailabilityResult(data=cached.data, from_cache=True)

        if cached:
            logger.debug(f"Stale cache hit for {date_str}, refreshing in background")
            self.refresh_in_background(date_str)
            return AvailabilityResult(data=cached.data, from_cache=True)

        data = await self.fetch_single(date_str)
        return AvailabilityResult(data=data, from_cache=False)

    async def initial_load(self):
        """Loads the two-week browsing window, falling back to today's date alone."""
        today = self.today().isoformat()
        try:
            await self.fetch_range(today, config.INITIAL_LOAD_DAYS)
        except Exception as e:
            logger.warning(f"Range fetch failed, falling back to single date: {e}")
            await self.fetch_single(today)

    def prefetch_around(self, center_date: str):
        """Schedules 7-day batch fetches on whichever side of ``center_date`` is near the cache edge."""
        check_ahead = add_days(center_date, config.PREFETCH_BUFFER_DAYS)
        check_behind = add_days(center_date, -config.PREFETCH_BUFFER_DAYS)

        if not self.cache.has(check_ahead):
            start_ahead = add_days(center_date, 1)
            self._spawn(
                self._prefetch(start_ahead, "ahead"),
                name=f"prefetch-{start_ahead}-{config.PREFETCH_BATCH_DAYS}",
            )

        if not self.cache.has(check_behind):
            start_behind = add_days(center_date, -config.PREFETCH_BATCH_DAYS)
            self._spawn(
                self._prefetch(start_behind, "behind"),
                name=f"prefetch-{start_behind}-{config.PREFETCH_BATCH_DAYS}",
            )

    async def _prefetch(self, start_date: str, direction: str):
        try:
            await self.fetch_range(start_date, config.PREFETCH_BATCH_DAYS)
        except Exception as e:
            logger.warning(f"Prefetch {direction} failed: {e}")

    async def fetch_single(self, date_str: str) -> AvailabilitySnapshot:
        data = await asyncio.to_thread(self.client.get_availability, date_str)
        if not self._store(date_str, data):
            raise ApiError(f"Availability response for {date_str} carried date {data.date}")
        return data

    async def fetch_range(self, start_date: str, num_days: int):
        cache_key = f"{start_date}-{num_days}"

        # The in-flight request will fill the cache for this caller too
        if cache_key in self._pending_fetches:
            logger.debug(f"Range {cache_key} already being fetched")
            return

        self._pending_fetches.add(cache_key)
        try:
            days = await asyncio.to_thread(self.client.get_availability_range, start_date, num_days)
            for date_str, day_data in days.items():
                self._store(date_str, day_data)
        finally:
            self._pending_fetches.discard(cache_key)

    def refresh_in_background(self, date_str: str):
        self._spawn(self._refresh(date_str), name=f"refresh-{date_str}")

    async def _refresh(self, date_str: str):
        try:
            await self.fetch_single(date_str)
        except Exception as e:
            logger.warning(f"Background refresh for {date_str} failed: {e}")

    def subscribe(self, date_str: str, callback: Subscriber) -> Callable[[], None]:
        """Registers ``callback`` for writes to ``date_str``; returns the function that detaches it."""
        self._subscribers.setdefault(date_str, set()).add(callback)

        def unsubscribe():
            subs = self._subscribers.get(date_str)
            if subs is not None:
                subs.discard(callback)
                if not subs:
                    del self._subscribers[date_str]

        return unsubscribe

    def clear_cache(self):
        self.cache.clear()

    async def wait_for_background(self):
        """Waits for every background refresh and prefetch scheduled so far."""
        while True:
            pending = [task for task in self._background_tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending)

    @property
    def pending_fetches(self) -> Set[str]:
        return set(self._pending_fetches)

    def _store(self, date_str: str, data: AvailabilitySnapshot) -> bool:
        if data.date != date_str:
            logger.warning(f"Dropping availability for {data.date} received under key {date_str}")
            return False
        self.cache.set(date_str, data)
        self._notify_subscribers(date_str, data)
        return True

    def _notify_subscribers(self, date_str: str, data: AvailabilitySnapshot):
        for callback in list(self._subscribers.get(date_str, ())):
            # Detached by an earlier callback in this round
            if callback not in self._subscribers.get(date_str, ()):
                continue
            try:
                callback(data)
            except Exception:
                logger.exception(f"Availability subscriber for {date_str} failed")

    def _spawn(self, coro: Coroutine, name: str):
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
