"""
Device position strategy.

Asks a position provider for coordinates and reverse-geocodes them. The
provider may refuse (`PositionDeniedError`, never retried) or fail
transiently (`PositionUnavailableError` or a timeout, retried with an
incrementing delay).
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from geo_resolver.core.clock import Sleep, async_sleep
from geo_resolver.core.exceptions import PositionDeniedError, PositionUnavailableError
from geo_resolver.domain.entities.location import LocationCandidate
from geo_resolver.domain.services.geocoding import GeocodingService

from .base import DetectionStrategy

logger = structlog.get_logger(__name__)

DEVICE_CONFIDENCE = 0.95
DEVICE_ACCURACY = "GPS (high accuracy)"


class PositionProvider(ABC):
    """Source of the device's coordinates."""

    @abstractmethod
    async def get_position(self) -> Tuple[float, float]:
        """Return (lat, lon).

        Raises:
            PositionDeniedError: Access to the position is refused.
            PositionUnavailableError: No position right now; may succeed later.
        """


class ConfiguredPositionProvider(PositionProvider):
    """Reports fixed coordinates from configuration.

    Without coordinates it refuses, so detection moves on immediately.
    """

    def __init__(self, lat: Optional[float] = None, lon: Optional[float] = None):
        self.lat = lat
        self.lon = lon

    async def get_position(self) -> Tuple[float, float]:
        if self.lat is None or self.lon is None:
            raise PositionDeniedError("No device position configured")
        return self.lat, self.lon


class DevicePositionStrategy(DetectionStrategy):
    """Device coordinates plus reverse geocoding; the most precise strategy."""

    name = "device"

    def __init__(
        self,
        provider: PositionProvider,
        geocoder: GeocodingService,
        timeout: float = 10.0,
        attempts: int = 3,
        sleep: Sleep = async_sleep,
    ):
        self.provider = provider
        self.geocoder = geocoder
        self.timeout = timeout
        self.attempts = attempts
        self._sleep = sleep

    async def _detect(self) -> Optional[LocationCandidate]:
        try:
            lat, lon = await self._position()
        except PositionDeniedError as e:
            logger.info("device_position_denied", reason=e.message)
            return None

        record = await self.geocoder.reverse_geocode(lat, lon)
        if record is None:
            return None
        return record.to_candidate().with_updates(
            source="device",
            confidence=DEVICE_CONFIDENCE,
            accuracy=DEVICE_ACCURACY,
            quality=None,
            timestamp=None,
        )

    async def _position(self) -> Tuple[float, float]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_incrementing(start=1, increment=1),
            retry=retry_if_exception_type((PositionUnavailableError, asyncio.TimeoutError)),
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(self._position_once)

    async def _position_once(self) -> Tuple[float, float]:
        try:
            return await asyncio.wait_for(self.provider.get_position(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.info("device_position_timed_out", timeout=self.timeout)
            raise
