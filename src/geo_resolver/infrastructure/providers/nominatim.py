"""Nominatim (OpenStreetMap) reverse and forward geocoding responses."""

from typing import Any, Mapping, Optional

from geo_resolver.domain.data.cities import find_nearest_city
from geo_resolver.domain.entities.location import LocationCandidate

CITY_KEYS = ("city", "town", "village", "hamlet", "municipality")


def _number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first(address: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = address.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _timezone_near(lat: float, lon: float) -> Optional[str]:
    # Nominatim has no timezone; borrow the nearest known city's zone.
    city = find_nearest_city(lat, lon)
    return city.timezone if city else None


def _to_candidate(place: Mapping[str, Any], city: Optional[str], address_text: Optional[str]) -> Optional[LocationCandidate]:
    address = place.get("address") or {}
    lat, lon = _number(place.get("lat")), _number(place.get("lon"))
    country = _first(address, "country")
    if not city or not country or lat is None or lon is None:
        return None
    state = _first(address, "state", "province")
    return LocationCandidate(
        city=city,
        country=country,
        state=state,
        region=_first(address, "region"),
        postal=_first(address, "postcode"),
        address=address_text or ", ".join(p for p in (city, state, country) if p),
        lat=lat,
        lon=lon,
        timezone=_timezone_near(lat, lon),
        source="geocoding",
    )


def normalize_reverse(payload: Any) -> Optional[LocationCandidate]:
    """`/reverse?format=jsonv2&addressdetails=1` answer, or None without a usable city."""
    if not isinstance(payload, Mapping) or "error" in payload:
        return None
    address = payload.get("address")
    if not isinstance(address, Mapping):
        return None
    return _to_candidate(payload, _first(address, *CITY_KEYS), None)


def normalize_search(payload: Any) -> Optional[LocationCandidate]:
    """First hit of a `/search?format=jsonv2&addressdetails=1` answer."""
    if not isinstance(payload, list) or not payload or not isinstance(payload[0], Mapping):
        return None
    place = payload[0]
    address = place.get("address") if isinstance(place.get("address"), Mapping) else {}
    city = _first(address, *CITY_KEYS) or _first(place, "name")
    display_name = place.get("display_name") if isinstance(place.get("display_name"), str) else None
    return _to_candidate({**place, "address": address}, city, display_name)
