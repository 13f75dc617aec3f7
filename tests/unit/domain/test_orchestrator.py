import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from geo_resolver.core.exceptions import InvalidQueryError
from geo_resolver.domain.entities import LocationCandidate
from geo_resolver.domain.services.detection import DetectionStrategy
from geo_resolver.domain.services.resolution import (
    CURRENT_LOCATION_KEY,
    LocationService,
    ResolutionState,
    fallback_record,
    selection_score,
)
from geo_resolver.domain.services.validation import LocationValidator
from geo_resolver.infrastructure.cache import LocationCache
from tests.factories.clock import settle

DEVICE = LocationCandidate(
    city="Berlin",
    country="Germany",
    state="Berlin",
    lat=52.52,
    lon=13.405,
    timezone="Europe/Berlin",
    accuracy="GPS (high accuracy)",
    source="device",
    confidence=0.95,
)
IP = LocationCandidate(
    city="Chicago",
    country="United States",
    state="Illinois",
    region="Illinois",
    postal="60601",
    address="Chicago, Illinois, United States",
    lat=41.8781,
    lon=-87.6298,
    timezone="America/Chicago",
    accuracy="IP-based (ipapi.co)",
    source="ip",
    confidence=0.7,
)
TIMEZONE = LocationCandidate(
    city="Paris",
    country="France",
    lat=48.8566,
    lon=2.3522,
    timezone="Europe/Paris",
    accuracy="Timezone-based",
    source="timezone",
    confidence=0.3,
)


class StubStrategy(DetectionStrategy):
    """Returns a fixed candidate; optionally waits for `gate` first."""

    def __init__(self, name, candidate=None, gate=None):
        self.name = name
        self.candidate = candidate
        self.gate = gate
        self.calls = 0

    async def _detect(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return self.candidate


@pytest.fixture
def cache(clock):
    return LocationCache(clock=clock, sleep=clock.sleep)


@pytest.fixture
def geocoder():
    geocoder = MagicMock()
    geocoder.reverse_geocode = AsyncMock(return_value=None)
    geocoder.geocode_location = AsyncMock(return_value=None)
    return geocoder


@pytest_asyncio.fixture
async def make_service(clock, cache, geocoder):
    services = []

    def factory(*strategies, **kwargs):
        service = LocationService(
            strategies,
            cache,
            LocationValidator(clock=clock),
            geocoder,
            clock=clock,
            sleep=clock.sleep,
            **kwargs,
        )
        services.append(service)
        return service

    yield factory
    for service in services:
        await service.aclose()


# ---------------------------------------------------------------------------
# Candidate arbitration
# ---------------------------------------------------------------------------


def test_selection_score_orders_sources():
    assert selection_score(DEVICE) > selection_score(IP) > selection_score(TIMEZONE)
    # 0.95 * 50 + GPS 30 + city/country 10 + state 5 + timezone 5, capped
    assert selection_score(DEVICE) == 97.5
    assert selection_score(LocationCandidate(city=None, country=None, lat=0, lon=0, confidence="high")) == 0


@pytest.mark.asyncio
async def test_device_beats_ip_beats_timezone(make_service):
    service = make_service(
        StubStrategy("timezone", TIMEZONE), StubStrategy("ip", IP), StubStrategy("device", DEVICE)
    )

    record = await service.detect_location()

    assert record.source == "device"
    assert record.city == "Berlin"


@pytest.mark.asyncio
async def test_ip_beats_timezone(make_service):
    service = make_service(StubStrategy("device"), StubStrategy("ip", IP), StubStrategy("timezone", TIMEZONE))

    assert (await service.detect_location()).source == "ip"


@pytest.mark.asyncio
async def test_invalid_best_candidate_falls_through_to_next(make_service):
    broken = DEVICE.with_updates(lat=None)
    service = make_service(StubStrategy("device", broken), StubStrategy("ip", IP))

    assert (await service.detect_location()).source == "ip"


@pytest.mark.asyncio
async def test_resolved_record_is_in_range_and_cached(make_service, cache, clock):
    service = make_service(StubStrategy("ip", IP))

    record = await service.detect_location()

    assert -90 <= record.lat <= 90 and -180 <= record.lon <= 180
    assert 0 <= record.quality <= 100 and 0 <= record.confidence <= 1
    assert record.quality == 60
    assert record.timestamp == clock()
    assert cache.get(CURRENT_LOCATION_KEY) == record
    assert cache.get(record.coordinate_key) == record
    assert service.state == ResolutionState.RESOLVED
    assert service.get_current_location() == record


@pytest.mark.asyncio
async def test_no_candidates_yield_fallback(make_service, cache, clock):
    service = make_service(StubStrategy("device"), StubStrategy("ip"), StubStrategy("timezone"))

    record = await service.detect_location()

    assert record == fallback_record(clock())
    assert record.source == "fallback"
    assert record.city == "New York"
    assert record.quality == 10
    assert cache.get(CURRENT_LOCATION_KEY) == record

    clock.advance(301)
    assert cache.get(CURRENT_LOCATION_KEY) is None


@pytest.mark.asyncio
async def test_detect_location_never_raises(make_service):
    service = make_service(StubStrategy("ip", IP))
    service.validator = MagicMock()
    service.validator.validate_and_enhance.side_effect = RuntimeError("validator exploded")

    record = await service.detect_location()

    assert record.source == "fallback"


# ---------------------------------------------------------------------------
# Single flight
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_back_to_back_calls_run_one_pass(make_service):
    strategy = StubStrategy("ip", IP)
    service = make_service(strategy)

    first = await service.detect_location()
    second = await service.detect_location()

    assert second is first
    assert strategy.calls == 1


@pytest.mark.asyncio
async def test_concurrent_call_gets_fallback_while_first_pass_runs(make_service):
    gate = asyncio.Event()
    strategy = StubStrategy("ip", IP, gate=gate)
    service = make_service(strategy)

    pending = asyncio.ensure_future(service.detect_location())
    await settle()
    assert service.state == ResolutionState.RESOLVING

    interim = await service.detect_location()
    assert interim.source == "fallback"
    assert strategy.calls == 1

    gate.set()
    assert (await pending).source == "ip"


@pytest.mark.asyncio
async def test_concurrent_call_gets_last_detection_while_pass_runs(make_service, cache):
    gate = asyncio.Event()
    gate.set()
    strategy = StubStrategy("ip", IP, gate=gate)
    service = make_service(strategy)
    first = await service.detect_location()
    cache.delete(CURRENT_LOCATION_KEY)
    gate.clear()

    pending = asyncio.ensure_future(service.detect_location())
    await settle()
    interim = await service.detect_location()

    assert interim is first
    gate.set()
    await pending
    assert strategy.calls == 2


@pytest.mark.asyncio
async def test_forced_refresh_always_runs(make_service):
    strategy = StubStrategy("ip", IP)
    service = make_service(strategy)

    await service.detect_location()
    await service.refresh_location()

    assert strategy.calls == 2


# ---------------------------------------------------------------------------
# Staleness and background refresh
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stale_cache_is_returned_and_refreshed_in_background(make_service, clock):
    strategy = StubStrategy("ip", IP)
    service = make_service(strategy)
    first = await service.detect_location()
    refreshed = asyncio.Event()
    service.on_location_update(lambda record: refreshed.set())

    clock.advance(601)
    stale = await service.detect_location()

    assert stale is first
    await asyncio.wait_for(refreshed.wait(), timeout=1)
    assert strategy.calls == 2
    assert service.get_current_location().timestamp == clock()


@pytest.mark.asyncio
async def test_concurrent_stale_reads_start_one_refresh(make_service, clock):
    strategy = StubStrategy("ip", IP)
    service = make_service(strategy)
    await service.detect_location()

    clock.advance(660)
    await asyncio.gather(service.detect_location(), service.detect_location())
    await settle()

    assert strategy.calls == 2


@pytest.mark.asyncio
async def test_stale_reads_wait_for_pending_refresh(make_service, clock):
    """Reads while a stale refresh is still running do not start another one."""
    gate = asyncio.Event()
    gate.set()
    strategy = StubStrategy("ip", IP, gate=gate)
    service = make_service(strategy)
    await service.detect_location()

    gate.clear()
    clock.advance(660)
    for _ in range(3):
        await service.detect_location()
        await settle()

    assert strategy.calls == 2

    gate.set()
    await settle()
    assert strategy.calls == 2
    assert service.get_current_location().timestamp == clock()


@pytest.mark.parametrize("quality,interval", [(100, 3600), (80, 3600), (79, 1800), (60, 1800), (59, 900)])
def test_refresh_interval_tiers(quality, interval, clock, cache, geocoder):
    service = LocationService([], cache, LocationValidator(clock=clock), geocoder, clock=clock)

    assert service.refresh_interval(quality) == interval


@pytest.mark.asyncio
async def test_refresh_is_scheduled_by_quality(make_service, clock):
    strategy = StubStrategy("ip", IP)
    service = make_service(strategy)

    await service.detect_location()
    await settle()

    # IP quality is 60: the medium tier.
    assert clock.sleeps[-1] == 1800
    task = service.refresh_task

    clock.advance(1800)
    await task

    assert strategy.calls == 2
    assert service.refresh_task is not task
    assert not service.refresh_task.done()


@pytest.mark.asyncio
async def test_new_pass_replaces_pending_refresh(make_service):
    service = make_service(StubStrategy("ip", IP))

    await service.detect_location()
    first_task = service.refresh_task
    await service.refresh_location()
    await settle()

    assert first_task.cancelled()
    assert service.refresh_task is not first_task


@pytest.mark.asyncio
async def test_fallback_schedules_low_tier_refresh(make_service, clock):
    service = make_service(StubStrategy("ip"))

    await service.detect_location()
    await settle()

    assert clock.sleeps[-1] == 900


@pytest.mark.asyncio
async def test_failed_refresh_retries_with_doubled_delay(make_service, clock):
    service = make_service(StubStrategy("ip", IP), refresh_retry_max=10_000)
    await service.detect_location()
    await settle()
    service.validator = MagicMock()
    service.validator.validate_and_enhance.side_effect = RuntimeError("validator exploded")

    clock.advance(1800)
    await settle()

    assert clock.sleeps[-1] == 3600


@pytest.mark.asyncio
async def test_refresh_retry_delay_is_capped(make_service, clock):
    service = make_service(StubStrategy("ip", IP), refresh_retry_max=2000)
    await service.detect_location()
    await settle()
    service.validator = MagicMock()
    service.validator.validate_and_enhance.side_effect = RuntimeError("validator exploded")

    clock.advance(1800)
    await settle()

    assert clock.sleeps[-1] == 2000


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_subscribers_receive_new_records(make_service):
    service = make_service(StubStrategy("ip", IP))
    received = []

    def broken(record):
        raise RuntimeError("listener bug")

    service.on_location_update(broken)
    service.on_location_update(received.append)

    record = await service.detect_location()

    assert received == [record]


@pytest.mark.asyncio
async def test_unsubscribe(make_service):
    service = make_service(StubStrategy("ip", IP))
    received = []
    unsubscribe = service.on_location_update(received.append)

    unsubscribe()
    unsubscribe()
    await service.detect_location()

    assert received == []


@pytest.mark.asyncio
async def test_fallback_is_not_published(make_service):
    service = make_service(StubStrategy("ip"))
    received = []
    service.on_location_update(received.append)

    await service.detect_location()

    assert received == []


# ---------------------------------------------------------------------------
# Queries and cache management
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_is_location_stale(make_service, clock):
    service = make_service(StubStrategy("ip", IP))
    assert service.is_location_stale() is True

    await service.detect_location()
    assert service.is_location_stale() is False

    clock.advance(301)
    assert service.is_location_stale() is True


@pytest.mark.asyncio
async def test_offline_location_prefers_current_then_coordinates(make_service, cache, clock):
    service = make_service(StubStrategy("ip", IP))
    assert service.get_offline_location().source == "fallback"

    record = await service.detect_location()
    assert service.get_offline_location() == record

    cache.delete(CURRENT_LOCATION_KEY)
    assert service.get_offline_location() == record


@pytest.mark.asyncio
async def test_clear_cache(make_service, cache):
    service = make_service(StubStrategy("ip", IP))
    await service.detect_location()

    service.clear_cache()

    assert cache.size() == 0
    assert service.get_current_location() is None


@pytest.mark.asyncio
async def test_cache_stats_without_executor(make_service):
    service = make_service(StubStrategy("ip", IP))
    await service.detect_location()

    stats = service.get_cache_stats()

    assert stats["location_cache"]["size"] == 2
    assert "executor" not in stats


# ---------------------------------------------------------------------------
# Geocoding passthrough
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_preload_location_data_settles_every_query(make_service, geocoder, clock):
    service = make_service()
    paris = fallback_record(clock()).with_updates(city="Paris", source="geocoding")
    geocoder.geocode_location.side_effect = [paris, InvalidQueryError("Query must not be empty"), None]

    results = await service.preload_location_data(["Paris", "", "Atlantis"])

    assert results == [paris, None, None]


@pytest.mark.asyncio
async def test_geocoding_passthrough(make_service, geocoder):
    service = make_service()

    await service.reverse_geocode(52.52, 13.405)
    await service.geocode_location("Berlin")

    geocoder.reverse_geocode.assert_awaited_once_with(52.52, 13.405)
    geocoder.geocode_location.assert_awaited_once_with("Berlin")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_aclose_cancels_background_work(clock, cache, geocoder):
    async with LocationService(
        [StubStrategy("ip", IP)], cache, LocationValidator(clock=clock), geocoder, clock=clock, sleep=clock.sleep
    ) as service:
        await service.detect_location()
        await settle()
        task = service.refresh_task
        assert clock.parked == 2

    assert task.cancelled()
    assert service.refresh_task is None
    assert clock.parked == 0
