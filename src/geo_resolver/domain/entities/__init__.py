"""Domain entities for location resolution."""

from .location import LocationCandidate, LocationRecord

__all__ = ["LocationCandidate", "LocationRecord"]
