"""
Location Resolution Orchestrator

`LocationService` is the public face of the package. A resolution pass:

1. runs every detection strategy concurrently and waits for all of them
2. ranks the candidates by a selection score (confidence, precision, completeness)
3. walks them best-first; the first one that survives sanitizing and
   validation becomes the current `LocationRecord`
4. caches it under `current-location` and its coordinate key, notifies
   subscribers and schedules the next background refresh by quality tier

When no candidate survives, a static fallback record is cached briefly and
returned. `detect_location` never raises.

Concurrency:
    A natural (non-forced) detection is single-flight: while one is running,
    other callers get the last known record immediately. A forced refresh
    always runs. The background refresh is one `asyncio.Task` that is cancelled
    and replaced whenever a pass completes.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

import structlog

from geo_resolver.core.clock import Clock, Sleep, async_sleep, system_clock
from geo_resolver.domain.entities.location import LocationCandidate, LocationRecord
from geo_resolver.domain.services.detection.base import DetectionStrategy
from geo_resolver.domain.services.geocoding import GeocodingService
from geo_resolver.domain.services.validation import LocationValidator
from geo_resolver.infrastructure.cache.location_cache import LocationCache
from geo_resolver.infrastructure.http.executor import RequestExecutor

logger = structlog.get_logger(__name__)

CURRENT_LOCATION_KEY = "current-location"
COORDINATE_KEY_PREFIX = "coords:"

LocationListener = Callable[[LocationRecord], Any]

SELECTION_ACCURACY_BONUSES = (("GPS", 30), ("IP", 20), ("Timezone", 10))


class ResolutionState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


def selection_score(candidate: LocationCandidate) -> float:
    """Arbitration score of a raw candidate, 0-100."""
    confidence = candidate.confidence if isinstance(candidate.confidence, (int, float)) else 0
    score = confidence * 50

    accuracy = candidate.accuracy or ""
    for marker, bonus in SELECTION_ACCURACY_BONUSES:
        if marker in accuracy:
            score += bonus
            break

    if candidate.city and candidate.country:
        score += 10
    if candidate.state:
        score += 5
    if candidate.timezone:
        score += 5
    return min(100, score)


def fallback_record(timestamp: float) -> LocationRecord:
    """Static last-resort location."""
    return LocationRecord(
        city="New York",
        country="United States",
        state="NY",
        region="NY",
        postal="10001",
        address="New York, NY, United States",
        lat=40.7128,
        lon=-74.006,
        timezone="America/New_York",
        accuracy="Fallback",
        quality=10,
        confidence=0.1,
        source="fallback",
        timestamp=timestamp,
    )


class LocationService:
    """Resolves, caches and refreshes the current location.

    Args:
        strategies: Detection strategies, run concurrently on every pass.
        cache: Location cache (shared with the geocoder).
        validator: Sanitizes, validates and scores candidates.
        geocoder: Backs `reverse_geocode`, `geocode_location` and preloading.
        executor: Request executor, owned and closed by this service.
        refresh_high / refresh_medium / refresh_low: Background refresh
            interval in seconds for quality >= 80, >= 60 and below.
        refresh_retry_max: Upper bound of the refresh retry delay.
        stale_after: Age in seconds after which a cached current location
            triggers a background refresh.
        last_detection_max_age: Age after which `is_location_stale` is True.
        fallback_ttl: Seconds the fallback record stays cached.
        clock / sleep: Time sources (simulated in tests).
    """

    def __init__(
        self,
        strategies: Sequence[DetectionStrategy],
        cache: LocationCache,
        validator: LocationValidator,
        geocoder: GeocodingService,
        executor: Optional[RequestExecutor] = None,
        refresh_high: float = 60 * 60,
        refresh_medium: float = 30 * 60,
        refresh_low: float = 15 * 60,
        refresh_retry_max: float = 60 * 60,
        stale_after: float = 10 * 60,
        last_detection_max_age: float = 5 * 60,
        fallback_ttl: float = 5 * 60,
        clock: Clock = system_clock,
        sleep: Sleep = async_sleep,
    ):
        self.strategies = list(strategies)
        self.cache = cache
        self.validator = validator
        self.geocoder = geocoder
        self.executor = executor
        self.refresh_high = refresh_high
        self.refresh_medium = refresh_medium
        self.refresh_low = refresh_low
        self.refresh_retry_max = refresh_retry_max
        self.stale_after = stale_after
        self.last_detection_max_age = last_detection_max_age
        self.fallback_ttl = fallback_ttl
        self._clock = clock
        self._sleep = sleep

        self._state = ResolutionState.IDLE
        self._last_detection: Optional[LocationRecord] = None
        self._in_flight = 0
        self._listeners: List[LocationListener] = []
        self._refresh_task: Optional[asyncio.Task] = None
        self._stale_refresh: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def state(self) -> ResolutionState:
        return self._state

    @property
    def refresh_task(self) -> Optional[asyncio.Task]:
        return self._refresh_task

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def detect_location(self, force_refresh: bool = False) -> LocationRecord:
        """Return the current location, resolving it if needed. Never raises."""
        if not force_refresh:
            cached = self.cache.get(CURRENT_LOCATION_KEY)
            if cached is not None:
                self._last_detection = cached
                if self.cache.is_stale(CURRENT_LOCATION_KEY, self.stale_after) and not self._resolution_pending():
                    logger.debug("location_cache_stale_refreshing", age_limit=self.stale_after)
                    self._stale_refresh = self._spawn(self._refresh_in_background())
                return cached

            if self._in_flight:
                logger.debug("location_resolution_in_flight")
                return self._last_detection or fallback_record(self._clock())

        try:
            return await self._resolve()
        except Exception as e:
            logger.error("location_resolution_failed", error=str(e), error_type=type(e).__name__)
            return self._last_detection or fallback_record(self._clock())

    async def refresh_location(self) -> LocationRecord:
        return await self.detect_location(force_refresh=True)

    async def _resolve(self) -> LocationRecord:
        self._in_flight += 1
        self._state = ResolutionState.RESOLVING
        try:
            record = await self._best_record()
            if record is None:
                record = fallback_record(self._clock())
                self.cache.set(
                    CURRENT_LOCATION_KEY, record, ttl=self.fallback_ttl, quality=record.quality, source=record.source
                )
                logger.warning("location_resolution_fell_back", city=record.city)
            else:
                self.cache.set_location(CURRENT_LOCATION_KEY, record, record.source)
                self.cache.set_location(record.coordinate_key, record, record.source)
                logger.info(
                    "location_resolved",
                    source=record.source,
                    city=record.city,
                    country=record.country,
                    quality=record.quality,
                    confidence=record.confidence,
                )
                self._notify(record)

            self._last_detection = record
            self._schedule_refresh(self.refresh_interval(record.quality))
            return record
        finally:
            self._in_flight -= 1
            if not self._in_flight:
                self._state = ResolutionState.RESOLVED if self._last_detection else ResolutionState.IDLE

    async def _best_record(self) -> Optional[LocationRecord]:
        results = await asyncio.gather(*(s.detect() for s in self.strategies), return_exceptions=True)

        candidates: List[LocationCandidate] = []
        for strategy, result in zip(self.strategies, results):
            if isinstance(result, BaseException):
                logger.warning("detection_strategy_crashed", strategy=strategy.name, error=str(result))
            elif result is not None:
                candidates.append(result)

        for candidate in sorted(candidates, key=selection_score, reverse=True):
            record = self.validator.validate_and_enhance(candidate)
            if record is not None:
                return record
        return None

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------

    def refresh_interval(self, quality: float) -> float:
        if quality >= 80:
            return self.refresh_high
        if quality >= 60:
            return self.refresh_medium
        return self.refresh_low

    def _schedule_refresh(self, delay: float) -> None:
        previous = self._refresh_task
        if previous is not None and previous is not asyncio.current_task() and not previous.done():
            previous.cancel()
        self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_after(delay))

    async def _refresh_after(self, delay: float) -> None:
        while True:
            await self._sleep(delay)
            try:
                await self._resolve()
                return
            except Exception as e:
                delay = min(delay * 2, self.refresh_retry_max)
                logger.warning("background_refresh_failed", error=str(e), retry_in=delay)

    async def _refresh_in_background(self) -> None:
        try:
            await self._resolve()
        except Exception as e:
            logger.warning("background_refresh_failed", error=str(e))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _resolution_pending(self) -> bool:
        # A spawned refresh counts before its first step reaches `_resolve`.
        return bool(self._in_flight) or (self._stale_refresh is not None and not self._stale_refresh.done())

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_location_update(self, callback: LocationListener) -> Callable[[], None]:
        """Register a listener for new records. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, record: LocationRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(record)
            except Exception as e:
                logger.error("location_listener_failed", listener=repr(listener), error=str(e))

    # ------------------------------------------------------------------
    # Geocoding
    # ------------------------------------------------------------------

    async def reverse_geocode(self, lat: float, lon: float) -> Optional[LocationRecord]:
        return await self.geocoder.reverse_geocode(lat, lon)

    async def geocode_location(self, query: str) -> Optional[LocationRecord]:
        return await self.geocoder.geocode_location(query)

    async def preload_location_data(self, queries: Sequence[str]) -> List[Optional[LocationRecord]]:
        """Geocode every query, settle-all. Failed lookups come back as None."""
        results = await asyncio.gather(*(self.geocoder.geocode_location(q) for q in queries), return_exceptions=True)
        loaded: List[Optional[LocationRecord]] = []
        for query, result in zip(queries, results):
            if isinstance(result, BaseException):
                logger.warning("location_preload_failed", query=query, error=str(result))
                loaded.append(None)
            else:
                loaded.append(result)
        return loaded

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_current_location(self) -> Optional[LocationRecord]:
        return self._last_detection

    def is_location_stale(self) -> bool:
        if self._last_detection is None:
            return True
        return self._last_detection.age(self._clock()) > self.last_detection_max_age

    def get_offline_location(self) -> LocationRecord:
        """Best location available without any network call."""
        cached = self.cache.get(CURRENT_LOCATION_KEY)
        if cached is not None:
            return cached
        for key in self.cache.keys():
            if key.startswith(COORDINATE_KEY_PREFIX):
                record = self.cache.get(key)
                if record is not None:
                    return record
        return fallback_record(self._clock())

    def get_cache_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"location_cache": self.cache.stats()}
        if self.executor is not None:
            stats["executor"] = self.executor.stats()
        return stats

    def clear_cache(self) -> None:
        self.cache.clear()
        if self.executor is not None:
            self.executor.clear_cache()
        self._last_detection = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the cache sweeps. Requires a running event loop."""
        self.cache.start()
        if self.executor is not None:
            self.executor.response_cache.start()

    async def aclose(self) -> None:
        tasks = [t for t in (self._refresh_task, *self._background) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._refresh_task = None
        self._stale_refresh = None
        self._background.clear()

        await self.cache.stop()
        if self.executor is not None:
            await self.executor.response_cache.stop()
            await self.executor.aclose()

    async def __aenter__(self) -> "LocationService":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
