"""
Geocoding Service

Reverse geocoding (coordinates to place) and forward geocoding (free text to
place) through Nominatim, with a static city table behind each:

- reverse: nearest known city within 500 km, keeping the caller's coordinates
- forward: first name or alias match in the city table

Results are validated records, cached in the location cache under
`reverse:{lat},{lon}` and `geocode:{query}` (plus `coords:{lat},{lon}` for
forward hits). Malformed input raises `InvalidQueryError` before any network
call; every other failure degrades to the fallback, then to None.
"""

import math
import re
from typing import Optional, Tuple

import structlog

from geo_resolver.core.exceptions import GeoResolverError, InvalidQueryError
from geo_resolver.domain.data.cities import City, find_nearest_city, search_cities
from geo_resolver.domain.entities.location import LocationCandidate, LocationRecord
from geo_resolver.domain.services.validation import LocationValidator
from geo_resolver.infrastructure.cache.location_cache import LocationCache
from geo_resolver.infrastructure.http.executor import RequestExecutor
from geo_resolver.infrastructure.http.request import Priority, RequestConfig
from geo_resolver.infrastructure.providers.nominatim import normalize_reverse, normalize_search

logger = structlog.get_logger(__name__)

MAX_QUERY_LENGTH = 200
NEAREST_CITY_RADIUS_KM = 500.0
CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")


def _coordinate_suffix(lat: float, lon: float) -> str:
    return f"{lat:.4f},{lon:.4f}"


class GeocodingService:
    """Nominatim-backed geocoder.

    Args:
        executor: Request executor used for Nominatim calls.
        cache: Location cache shared with the resolution orchestrator.
        validator: Validator that turns normalized answers into records.
        base_url: Nominatim root URL.
        timeout: Seconds allowed per Nominatim attempt.
        retries: Retries per Nominatim call.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        cache: LocationCache,
        validator: LocationValidator,
        base_url: str = "https://nominatim.openstreetmap.org",
        timeout: float = 5.0,
        retries: int = 1,
    ):
        self.executor = executor
        self.cache = cache
        self.validator = validator
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries

    # ------------------------------------------------------------------
    # Reverse geocoding
    # ------------------------------------------------------------------

    async def reverse_geocode(self, lat: float, lon: float) -> Optional[LocationRecord]:
        """Resolve coordinates to a place.

        Raises:
            InvalidQueryError: Coordinates are not finite or out of range.
        """
        lat, lon = self._check_coordinates(lat, lon)
        suffix = _coordinate_suffix(lat, lon)
        cache_key = f"reverse:{suffix}"

        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        record = await self._reverse_from_network(lat, lon, suffix)
        if record is None:
            record = self._reverse_from_table(lat, lon)
        if record is not None:
            self.cache.set_location(cache_key, record, record.source)
        return record

    async def _reverse_from_network(self, lat: float, lon: float, suffix: str) -> Optional[LocationRecord]:
        config = RequestConfig(
            url=f"{self.base_url}/reverse",
            params={"format": "jsonv2", "lat": lat, "lon": lon, "zoom": 10, "addressdetails": 1},
            timeout=self.timeout,
            retries=self.retries,
            priority=Priority.HIGH,
            cache_key=f"nominatim:reverse:{suffix}",
        )
        try:
            payload = await self.executor.execute(config)
        except GeoResolverError as e:
            logger.info("reverse_geocode_network_failed", lat=lat, lon=lon, error=e.message, code=e.code)
            return None

        candidate = normalize_reverse(payload)
        if candidate is None:
            return None
        candidate = candidate.with_updates(lat=lat, lon=lon, accuracy="Reverse geocoded", confidence=0.9)
        return self.validator.validate_and_enhance(candidate, "geocoding")

    def _reverse_from_table(self, lat: float, lon: float) -> Optional[LocationRecord]:
        city = find_nearest_city(lat, lon, NEAREST_CITY_RADIUS_KM)
        if city is None:
            logger.info("reverse_geocode_no_nearby_city", lat=lat, lon=lon)
            return None
        candidate = self._city_candidate(city, accuracy="Database fallback").with_updates(lat=lat, lon=lon)
        return self.validator.validate_and_enhance(candidate, "database")

    # ------------------------------------------------------------------
    # Forward geocoding
    # ------------------------------------------------------------------

    async def geocode_location(self, query: str) -> Optional[LocationRecord]:
        """Resolve a free-text place name.

        Raises:
            InvalidQueryError: The query is empty, longer than 200 characters
                or contains control characters.
        """
        query = self._check_query(query)
        cache_key = f"geocode:{query.lower()}"

        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        record = await self._geocode_from_network(query)
        if record is not None:
            self.cache.set_location(cache_key, record, record.source)
            self.cache.set_location(record.coordinate_key, record, record.source)
            return record

        record = self._geocode_from_table(query)
        if record is not None:
            self.cache.set_location(cache_key, record, record.source)
        return record

    async def _geocode_from_network(self, query: str) -> Optional[LocationRecord]:
        config = RequestConfig(
            url=f"{self.base_url}/search",
            params={"q": query, "format": "jsonv2", "addressdetails": 1, "limit": 1},
            timeout=self.timeout,
            retries=self.retries,
            cache_key=f"nominatim:search:{query.lower()}",
        )
        try:
            payload = await self.executor.execute(config)
        except GeoResolverError as e:
            logger.info("geocode_network_failed", query=query, error=e.message, code=e.code)
            return None

        candidate = normalize_search(payload)
        if candidate is None:
            return None
        return self.validator.validate_and_enhance(
            candidate.with_updates(accuracy="Geocoded", confidence=0.8), "geocoding"
        )

    def _geocode_from_table(self, query: str) -> Optional[LocationRecord]:
        matches = search_cities(query, limit=1)
        if not matches:
            return None
        return self.validator.validate_and_enhance(
            self._city_candidate(matches[0], accuracy="Database search"), "database"
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _city_candidate(city: City, accuracy: str) -> LocationCandidate:
        return LocationCandidate(
            city=city.name,
            country=city.country,
            state=city.state,
            region=city.region,
            address=city.address,
            lat=city.lat,
            lon=city.lon,
            timezone=city.timezone,
            accuracy=accuracy,
            source="database",
            confidence=0.7,
        )

    @staticmethod
    def _check_coordinates(lat: float, lon: float) -> Tuple[float, float]:
        try:
            lat, lon = float(lat), float(lon)
        except (TypeError, ValueError):
            raise InvalidQueryError("Coordinates must be numbers")
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise InvalidQueryError("Coordinates must be finite numbers")
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            raise InvalidQueryError(f"Coordinates out of range: {lat}, {lon}")
        return lat, lon

    @staticmethod
    def _check_query(query: str) -> str:
        if not isinstance(query, str) or not query.strip():
            raise InvalidQueryError("Query must not be empty")
        if len(query) > MAX_QUERY_LENGTH:
            raise InvalidQueryError(f"Query must be at most {MAX_QUERY_LENGTH} characters")
        if CONTROL_CHARACTERS.search(query):
            raise InvalidQueryError("Query must not contain control characters")
        return query.strip()
