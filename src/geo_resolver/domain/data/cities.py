"""Static city table.

Used in three places: the timezone heuristic maps a local IANA zone to a
representative city, reverse geocoding falls back to the nearest known city
when Nominatim is unreachable, and forward geocoding falls back to a name and
alias search.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

EARTH_RADIUS_KM = 6371.0
DEFAULT_MAX_DISTANCE_KM = 500.0


@dataclass(frozen=True)
class City:
    name: str
    country: str
    lat: float
    lon: float
    timezone: str
    state: Optional[str] = None
    region: Optional[str] = None
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def address(self) -> str:
        parts = [self.name, self.state, self.country]
        return ", ".join(p for p in parts if p)


CITIES: List[City] = [
    City("New York City", "United States", 40.7128, -74.0060, "America/New_York", state="New York",
         aliases=("NYC", "New York", "Manhattan", "Big Apple")),
    City("Los Angeles", "United States", 34.0522, -118.2437, "America/Los_Angeles", state="California",
         aliases=("LA", "City of Angels", "Hollywood")),
    City("Chicago", "United States", 41.8781, -87.6298, "America/Chicago", state="Illinois",
         aliases=("Chi-town", "Windy City", "Second City")),
    City("San Francisco", "United States", 37.7749, -122.4194, "America/Los_Angeles", state="California",
         aliases=("SF", "San Fran", "City by the Bay")),
    City("Miami", "United States", 25.7617, -80.1918, "America/New_York", state="Florida",
         aliases=("Magic City", "Miami Beach")),
    City("Denver", "United States", 39.7392, -104.9903, "America/Denver", state="Colorado",
         aliases=("Mile High City",)),
    City("Banff", "Canada", 51.1784, -115.5708, "America/Edmonton", state="Alberta",
         aliases=("Banff National Park",)),
    City("Toronto", "Canada", 43.6532, -79.3832, "America/Toronto", state="Ontario", aliases=("The Six",)),
    City("London", "United Kingdom", 51.5074, -0.1278, "Europe/London", aliases=("The Big Smoke",)),
    City("Paris", "France", 48.8566, 2.3522, "Europe/Paris", aliases=("City of Light",)),
    City("Berlin", "Germany", 52.5200, 13.4050, "Europe/Berlin"),
    City("Rome", "Italy", 41.9028, 12.4964, "Europe/Rome", aliases=("Eternal City",)),
    City("Barcelona", "Spain", 41.3851, 2.1734, "Europe/Madrid", aliases=("Barca",)),
    City("Amsterdam", "Netherlands", 52.3676, 4.9041, "Europe/Amsterdam", aliases=("Venice of the North",)),
    City("Santorini", "Greece", 36.3932, 25.4615, "Europe/Athens", aliases=("Thira", "Thera")),
    City("Reykjavik", "Iceland", 64.1466, -21.9426, "Atlantic/Reykjavik"),
    City("Dubai", "United Arab Emirates", 25.2048, 55.2708, "Asia/Dubai", aliases=("City of Gold",)),
    City("Cape Town", "South Africa", -33.9249, 18.4241, "Africa/Johannesburg", aliases=("Mother City",)),
    City("Tokyo", "Japan", 35.6762, 139.6503, "Asia/Tokyo", aliases=("Edo",)),
    City("Singapore", "Singapore", 1.3521, 103.8198, "Asia/Singapore", aliases=("Lion City",)),
    City("Hong Kong", "China", 22.3193, 114.1694, "Asia/Hong_Kong"),
    City("Mumbai", "India", 19.0760, 72.8777, "Asia/Kolkata", state="Maharashtra", aliases=("Bombay",)),
    City("Bali", "Indonesia", -8.3405, 115.0920, "Asia/Makassar", aliases=("Island of the Gods",)),
    City("Sydney", "Australia", -33.8688, 151.2093, "Australia/Sydney", state="New South Wales",
         aliases=("Harbour City",)),
    City("Rio de Janeiro", "Brazil", -22.9068, -43.1729, "America/Sao_Paulo", aliases=("Marvelous City",)),
    City("Machu Picchu", "Peru", -13.1631, -72.5450, "America/Lima"),
]

# One representative city per zone; the first city listed for a zone wins.
TIMEZONE_CITIES: Dict[str, City] = {}
for _city in CITIES:
    TIMEZONE_CITIES.setdefault(_city.timezone, _city)
del _city


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def find_nearest_city(lat: float, lon: float, max_distance_km: float = DEFAULT_MAX_DISTANCE_KM) -> Optional[City]:
    """Closest known city within `max_distance_km`, or None."""
    nearest, best = None, math.inf
    for city in CITIES:
        distance = haversine_km(lat, lon, city.lat, city.lon)
        if distance < best and distance <= max_distance_km:
            nearest, best = city, distance
    return nearest


def search_cities(query: str, limit: int = 10) -> List[City]:
    """Cities matching a free-text query.

    Exact name or alias matches come first, then substring matches on name,
    alias, state or country.
    """
    needle = query.strip().lower()
    if not needle:
        return []

    exact, partial = [], []
    for city in CITIES:
        names = [city.name.lower(), *(alias.lower() for alias in city.aliases)]
        if needle in names:
            exact.append(city)
            continue
        haystack = names + [city.country.lower()] + ([city.state.lower()] if city.state else [])
        if any(needle in item for item in haystack):
            partial.append(city)
    return (exact + partial)[:limit]


def city_for_timezone(timezone: str) -> Optional[City]:
    return TIMEZONE_CITIES.get(timezone)
