"""Forward and reverse geocoding with static-table fallbacks."""

from .geocoding_service import GeocodingService

__all__ = ["GeocodingService"]
