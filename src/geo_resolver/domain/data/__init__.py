"""Static reference data used when lookup services are unavailable."""

from .cities import CITIES, TIMEZONE_CITIES, City, city_for_timezone, find_nearest_city, haversine_km, search_cities

__all__ = [
    "CITIES",
    "TIMEZONE_CITIES",
    "City",
    "city_for_timezone",
    "find_nearest_city",
    "haversine_km",
    "search_cities",
]
