"""IP geolocation providers.

Providers are listed in priority order; the IP-lookup strategy queries all of
them at once and keeps the first one (in this order) whose answer normalizes.
Normalizers map the payload only; the strategy stamps the provider's
confidence on the candidate.
"""

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple

from geo_resolver.domain.entities.location import LocationCandidate
from geo_resolver.infrastructure.http.request import Priority

Normalizer = Callable[[Any], Optional[LocationCandidate]]

# ipinfo.io reports ISO 3166 alpha-2 codes only.
COUNTRY_NAMES = {
    "US": "United States",
    "CA": "Canada",
    "GB": "United Kingdom",
    "DE": "Germany",
    "FR": "France",
    "AU": "Australia",
    "JP": "Japan",
    "IN": "India",
    "CN": "China",
    "BR": "Brazil",
    "ES": "Spain",
    "IT": "Italy",
    "NL": "Netherlands",
    "MX": "Mexico",
    "SG": "Singapore",
}


@dataclass(frozen=True)
class IpProvider:
    name: str
    url: str
    confidence: float
    normalize: Normalizer
    priority: Priority = Priority.MEDIUM
    timeout: float = 8.0
    retries: int = 1

    @property
    def cache_key(self) -> str:
        return f"ip-location:{self.name}"


def _number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _join(*parts: Optional[str]) -> str:
    return ", ".join(p for p in parts if p)


def _candidate(
    provider: str,
    city: Optional[str],
    country: Optional[str],
    lat: Optional[float],
    lon: Optional[float],
    state: Optional[str] = None,
    postal: Optional[str] = None,
    timezone: Optional[str] = None,
) -> Optional[LocationCandidate]:
    if not city or not country or lat is None or lon is None:
        return None
    return LocationCandidate(
        city=city,
        country=country,
        lat=lat,
        lon=lon,
        state=state,
        region=state,
        postal=postal,
        address=_join(city, state, country),
        timezone=timezone,
        accuracy=f"IP-based ({provider})",
        source="ip",
    )


def normalize_ipapi_co(payload: Any) -> Optional[LocationCandidate]:
    """https://ipapi.co/json/ answers; `{"error": true}` means no result."""
    if not isinstance(payload, Mapping) or payload.get("error"):
        return None
    return _candidate(
        "ipapi.co",
        city=_text(payload.get("city")),
        country=_text(payload.get("country_name")),
        lat=_number(payload.get("latitude")),
        lon=_number(payload.get("longitude")),
        state=_text(payload.get("region")),
        postal=_text(payload.get("postal")),
        timezone=_text(payload.get("timezone")),
    )


def normalize_ip_api_com(payload: Any) -> Optional[LocationCandidate]:
    """http://ip-api.com/json/ answers; `status` is "success" or "fail"."""
    if not isinstance(payload, Mapping) or payload.get("status", "success") != "success":
        return None
    return _candidate(
        "ip-api.com",
        city=_text(payload.get("city")),
        country=_text(payload.get("country")),
        lat=_number(payload.get("lat")),
        lon=_number(payload.get("lon")),
        state=_text(payload.get("regionName")),
        postal=_text(payload.get("zip")),
        timezone=_text(payload.get("timezone")),
    )


def normalize_ipinfo_io(payload: Any) -> Optional[LocationCandidate]:
    """https://ipinfo.io/json answers; coordinates come as a "lat,lon" string."""
    if not isinstance(payload, Mapping) or payload.get("bogon"):
        return None
    lat = lon = None
    loc = _text(payload.get("loc"))
    if loc and loc.count(",") == 1:
        lat_text, lon_text = loc.split(",")
        lat, lon = _number(lat_text), _number(lon_text)
    code = _text(payload.get("country"))
    return _candidate(
        "ipinfo.io",
        city=_text(payload.get("city")),
        country=COUNTRY_NAMES.get(code.upper(), code) if code else None,
        lat=lat,
        lon=lon,
        state=_text(payload.get("region")),
        postal=_text(payload.get("postal")),
        timezone=_text(payload.get("timezone")),
    )


IP_PROVIDERS: Tuple[IpProvider, ...] = (
    IpProvider("ipapi.co", "https://ipapi.co/json/", 0.7, normalize_ipapi_co, Priority.HIGH),
    IpProvider("ip-api.com", "http://ip-api.com/json/", 0.6, normalize_ip_api_com, Priority.MEDIUM),
    IpProvider("ipinfo.io", "https://ipinfo.io/json", 0.5, normalize_ipinfo_io, Priority.LOW),
)
