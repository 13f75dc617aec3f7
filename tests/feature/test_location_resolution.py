import pytest

from geo_resolver.core.circuit_breaker import OPEN
from geo_resolver.domain.services.detection import ConfiguredPositionProvider
from geo_resolver.domain.services.resolution import CURRENT_LOCATION_KEY
from tests.factories.clock import settle
from tests.factories.payloads import NOMINATIM_HOST, NOMINATIM_SEARCH_PARIS
from tests.factories.settings import make_settings
from tests.factories.upstream import FakeUpstream

IP_HOSTS = ("ipapi.co", "ip-api.com", "ipinfo.io")


@pytest.mark.asyncio
async def test_ip_lookup_resolves_location(build_service, live_upstream):
    service = build_service()

    record = await service.detect_location()

    assert record.city == "Chicago"
    assert record.source == "ip"
    assert record.accuracy == "IP-based (ipapi.co)"
    assert [len(live_upstream.calls_to(host)) for host in IP_HOSTS] == [1, 1, 1]
    assert service.cache.get(CURRENT_LOCATION_KEY) == record


@pytest.mark.asyncio
async def test_device_position_wins_over_ip(build_service, live_upstream):
    service = build_service(make_settings(DEVICE_LATITUDE=52.52, DEVICE_LONGITUDE=13.405))

    record = await service.detect_location()

    assert record.source == "device"
    assert record.city == "Berlin"
    assert record.accuracy == "GPS (high accuracy)"
    assert (record.lat, record.lon) == (52.52, 13.405)
    assert len(live_upstream.calls_to(NOMINATIM_HOST)) == 1


@pytest.mark.asyncio
async def test_explicit_position_provider(build_service, live_upstream):
    service = build_service(position_provider=ConfiguredPositionProvider(48.85, 2.35))

    record = await service.detect_location()

    assert record.source == "device"
    # The fake Nominatim always answers Berlin for reverse lookups.
    assert record.city == "Berlin"


@pytest.mark.asyncio
async def test_failing_provider_falls_through_to_next(build_service, live_upstream):
    live_upstream.fail("ipapi.co", 503)
    service = build_service()

    record = await service.detect_location()

    assert record.city == "Denver"
    assert len(live_upstream.calls_to("ipapi.co")) == 2


@pytest.mark.asyncio
async def test_timezone_heuristic_when_network_is_down(build_service):
    service = build_service(make_settings(LOCAL_TIMEZONE="Asia/Tokyo"))

    record = await service.detect_location()

    assert record.city == "Tokyo"
    assert record.source == "timezone"
    assert record.accuracy == "Timezone-based"


@pytest.mark.asyncio
async def test_everything_down_yields_fallback(build_service, upstream):
    service = build_service()

    record = await service.detect_location()

    assert record.source == "fallback"
    assert record.city == "New York"
    assert (record.lat, record.lon) == (40.7128, -74.006)
    assert record.quality == 10
    assert record.confidence == 0.1
    assert [len(upstream.calls_to(host)) for host in IP_HOSTS] == [2, 2, 2]


@pytest.mark.asyncio
async def test_second_detection_is_served_from_cache(build_service, live_upstream):
    service = build_service()

    first = await service.detect_location()
    calls = len(live_upstream.calls)
    second = await service.detect_location()

    assert second == first
    assert len(live_upstream.calls) == calls


@pytest.mark.asyncio
async def test_forced_refresh_reuses_cached_provider_responses(build_service, live_upstream):
    service = build_service()

    await service.detect_location()
    await service.detect_location(force_refresh=True)

    assert [len(live_upstream.calls_to(host)) for host in IP_HOSTS] == [1, 1, 1]


@pytest.mark.asyncio
async def test_repeated_failures_open_the_circuit(build_service, live_upstream):
    """After five failed lookups the provider is skipped without a network call."""
    live_upstream.fail("ipapi.co", 503)
    service = build_service()

    for _ in range(6):
        record = await service.detect_location(force_refresh=True)
        assert record.city == "Denver"

    assert len(live_upstream.calls_to("ipapi.co")) == 10
    assert service.executor.breaker.state_of("ipapi.co") == OPEN
    stats = service.get_cache_stats()
    assert stats["executor"]["circuit_breakers"]["ipapi.co"]["state"] == OPEN


@pytest.mark.asyncio
async def test_geocoding_respects_nominatim_rate_limit(build_service, upstream, clock):
    times = []

    def handler(request):
        times.append(clock())
        return NOMINATIM_SEARCH_PARIS

    upstream.route(NOMINATIM_HOST, handler)
    service = build_service()

    results = await service.preload_location_data(["Paris", "Paris, France", "Ville Lumiere"])

    assert [r.city for r in results] == ["Paris", "Paris", "Paris"]
    assert len(times) == 3
    assert all(later - earlier >= 1.0 - 1e-6 for earlier, later in zip(times, times[1:]))


@pytest.mark.asyncio
async def test_location_survives_restart_with_file_snapshot(build_service, live_upstream, tmp_path):
    settings = make_settings(CACHE_BACKEND="file", CACHE_FILE_PATH=str(tmp_path / "locations.json"))
    first = build_service(settings)
    record = await first.detect_location()
    await first.aclose()

    offline = FakeUpstream()
    second = build_service(settings, client=offline.client())

    assert second.get_offline_location() == record
    assert await second.detect_location() == record
    assert offline.calls == []


@pytest.mark.asyncio
async def test_subscribers_follow_background_refresh(build_service, live_upstream, clock):
    service = build_service()
    updates = []
    service.on_location_update(updates.append)

    await service.detect_location()
    task = service.refresh_task
    await settle()

    # Longer than any refresh tier an IP record can land in.
    clock.advance(1800)
    await task

    assert [u.city for u in updates] == ["Chicago", "Chicago"]
    assert updates[1].timestamp == clock()
