"""Rule-based sanitizing and scoring of location candidates."""

from .location_validator import COUNTRY_BOUNDS, CountryBounds, LocationValidator

__all__ = ["COUNTRY_BOUNDS", "CountryBounds", "LocationValidator"]
