"""geo_resolver: best-effort location resolution over unreliable lookup services.

The public entry point is :class:`LocationService`, usually built through
:func:`create_location_service` so that the rate limiter, circuit breaker and
caches are wired from a single :class:`~geo_resolver.core.config.settings.Settings`
object.
"""

from geo_resolver.domain.entities.location import LocationCandidate, LocationRecord
from geo_resolver.domain.services.resolution.orchestrator import LocationService, ResolutionState
from geo_resolver.infrastructure.dependency_injection.location_dependencies import (
    create_location_service,
)

__all__ = [
    "LocationCandidate",
    "LocationRecord",
    "LocationService",
    "ResolutionState",
    "create_location_service",
]

__version__ = "0.1.0"
