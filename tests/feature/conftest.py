import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from geo_resolver.core.application import create_application
from geo_resolver.infrastructure.dependency_injection.location_dependencies import create_location_service
from tests.factories.payloads import (
    IP_API_COM_DENVER,
    IPAPI_CO_CHICAGO,
    IPINFO_TORONTO,
    NOMINATIM_HOST,
    nominatim_handler,
)


@pytest.fixture
def live_upstream(upstream):
    """Every lookup service answering normally."""
    upstream.json("ipapi.co", IPAPI_CO_CHICAGO)
    upstream.json("ip-api.com", IP_API_COM_DENVER)
    upstream.json("ipinfo.io", IPINFO_TORONTO)
    upstream.route(NOMINATIM_HOST, nominatim_handler)
    return upstream


@pytest_asyncio.fixture
async def build_service(settings, upstream, clock):
    """Builds fully wired services over the fake upstream and simulated clock."""
    services = []

    def factory(custom_settings=None, **kwargs):
        kwargs.setdefault("client", upstream.client())
        service = create_location_service(custom_settings or settings, clock=clock, sleep=clock.sleep, **kwargs)
        services.append(service)
        return service

    yield factory
    for service in services:
        await service.aclose()


@pytest.fixture
def client(settings, live_upstream, clock):
    """Test client running the application lifespan over the fake upstream."""
    app = create_application(
        settings,
        service_factory=lambda s: create_location_service(
            s, client=live_upstream.client(), clock=clock, sleep=clock.sleep
        ),
    )
    with TestClient(app) as test_client:
        yield test_client
