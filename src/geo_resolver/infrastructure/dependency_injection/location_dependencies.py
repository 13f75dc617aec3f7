"""Dependency wiring for the location service.

Builds the whole service graph from a `Settings` object: one rate limiter, one
circuit breaker and one location cache are created per service and shared by
every component that needs them. Nothing here is a module-level singleton, so
tests and multiple applications can build independent graphs.

The FastAPI dependency `get_location_service` hands out the instance created
by the application lifespan.
"""

from typing import Annotated, Optional

import httpx
from fastapi import Depends, Request

from geo_resolver.core.circuit_breaker import CircuitBreaker
from geo_resolver.core.clock import Clock, Sleep, async_sleep, system_clock
from geo_resolver.core.config.settings import Settings
from geo_resolver.core.rate_limiting import DomainRateLimiter
from geo_resolver.domain.services.detection import (
    ConfiguredPositionProvider,
    DevicePositionStrategy,
    IpLookupStrategy,
    PositionProvider,
    TimezoneStrategy,
)
from geo_resolver.domain.services.geocoding import GeocodingService
from geo_resolver.domain.services.resolution.orchestrator import LocationService
from geo_resolver.domain.services.validation import LocationValidator
from geo_resolver.infrastructure.cache import (
    FileSnapshotStore,
    IntelligentCache,
    LocationCache,
    RedisSnapshotStore,
    SnapshotStore,
)
from geo_resolver.infrastructure.http.executor import RequestExecutor
from geo_resolver.infrastructure.providers.ip_providers import IP_PROVIDERS

# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def create_snapshot_store(settings: Settings) -> Optional[SnapshotStore]:
    """Snapshot store selected by CACHE_BACKEND, or None for memory only."""
    if settings.CACHE_BACKEND == "file":
        return FileSnapshotStore(settings.CACHE_FILE_PATH)
    if settings.CACHE_BACKEND == "redis":
        return RedisSnapshotStore.from_url(settings.REDIS_URL, settings.CACHE_STORAGE_KEY)
    return None


def create_executor(
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
    clock: Clock = system_clock,
    sleep: Sleep = async_sleep,
) -> RequestExecutor:
    limiter = DomainRateLimiter(settings.DOMAIN_RATE_LIMITS, clock=clock)
    breaker = CircuitBreaker(
        failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
        reset_timeout=settings.CIRCUIT_RESET_TIMEOUT,
        clock=clock,
        name="http",
    )
    response_cache: IntelligentCache = IntelligentCache(
        "geo-resolver-response-cache",
        max_size=settings.RESPONSE_CACHE_MAX_SIZE,
        default_ttl=settings.DEFAULT_CACHE_TTL,
        clock=clock,
        sleep=sleep,
    )
    return RequestExecutor(
        client=client,
        limiter=limiter,
        breaker=breaker,
        response_cache=response_cache,
        domain_ttls=settings.DOMAIN_CACHE_TTLS,
        default_ttl=settings.DEFAULT_CACHE_TTL,
        default_timeout=settings.HTTP_DEFAULT_TIMEOUT,
        default_retries=settings.HTTP_DEFAULT_RETRIES,
        backoff_base=settings.HTTP_BACKOFF_BASE,
        backoff_max=settings.HTTP_BACKOFF_MAX,
        batch_size=settings.BATCH_SIZE,
        batch_debounce=settings.BATCH_DEBOUNCE_SECONDS,
        user_agent=settings.HTTP_USER_AGENT,
        clock=clock,
        sleep=sleep,
    )


def create_location_service(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
    position_provider: Optional[PositionProvider] = None,
    store: Optional[SnapshotStore] = None,
    clock: Clock = system_clock,
    sleep: Sleep = async_sleep,
) -> LocationService:
    """Build a fully wired `LocationService`.

    Args:
        settings: Configuration; the process-wide settings when omitted.
        client: HTTP client to use instead of an owned one (tests pass one
            backed by `httpx.MockTransport`).
        position_provider: Device position source; defaults to the
            configured DEVICE_LATITUDE/DEVICE_LONGITUDE.
        store: Snapshot store overriding CACHE_BACKEND.
        clock / sleep: Time sources shared by every component.
    """
    if settings is None:
        from geo_resolver.core.config.settings import settings as default_settings

        settings = default_settings

    executor = create_executor(settings, client=client, clock=clock, sleep=sleep)
    cache = LocationCache(
        storage_key=settings.CACHE_STORAGE_KEY,
        max_size=settings.CACHE_MAX_SIZE,
        default_ttl=settings.CACHE_DEFAULT_TTL,
        max_age=settings.CACHE_MAX_AGE,
        cleanup_interval=settings.CACHE_CLEANUP_INTERVAL,
        store=store if store is not None else create_snapshot_store(settings),
        clock=clock,
        sleep=sleep,
    )
    validator = LocationValidator(
        source_reliability=settings.SOURCE_RELIABILITY,
        default_reliability=settings.DEFAULT_SOURCE_RELIABILITY,
        clock=clock,
    )
    geocoder = GeocodingService(executor, cache, validator, base_url=settings.NOMINATIM_BASE_URL)

    provider = position_provider or ConfiguredPositionProvider(settings.DEVICE_LATITUDE, settings.DEVICE_LONGITUDE)
    enabled = set(settings.IP_PROVIDERS_ENABLED)
    strategies = [
        DevicePositionStrategy(
            provider,
            geocoder,
            timeout=settings.DEVICE_POSITION_TIMEOUT,
            attempts=settings.DEVICE_POSITION_RETRIES,
            sleep=sleep,
        ),
        IpLookupStrategy(executor, [p for p in IP_PROVIDERS if p.name in enabled]),
        TimezoneStrategy(settings.LOCAL_TIMEZONE),
    ]

    return LocationService(
        strategies,
        cache,
        validator,
        geocoder,
        executor=executor,
        refresh_high=settings.REFRESH_INTERVAL_HIGH,
        refresh_medium=settings.REFRESH_INTERVAL_MEDIUM,
        refresh_low=settings.REFRESH_INTERVAL_LOW,
        refresh_retry_max=settings.REFRESH_RETRY_MAX,
        stale_after=settings.STALE_AFTER,
        last_detection_max_age=settings.LAST_DETECTION_MAX_AGE,
        fallback_ttl=settings.FALLBACK_TTL,
        clock=clock,
        sleep=sleep,
    )


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_location_service(request: Request) -> LocationService:
    """The service created by the application lifespan."""
    return request.app.state.location_service


LocationServiceDep = Annotated[LocationService, Depends(get_location_service)]
