"""Provider endpoints and their response normalizers.

Nothing outside this package sees a provider's raw schema: each normalizer
turns one JSON payload into a `LocationCandidate` (or None when the payload is
unusable).
"""

from .ip_providers import IP_PROVIDERS, IpProvider, normalize_ip_api_com, normalize_ipapi_co, normalize_ipinfo_io
from .nominatim import normalize_reverse, normalize_search

__all__ = [
    "IP_PROVIDERS",
    "IpProvider",
    "normalize_ip_api_com",
    "normalize_ipapi_co",
    "normalize_ipinfo_io",
    "normalize_reverse",
    "normalize_search",
]
