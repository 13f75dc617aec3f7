"""
Outbound HTTP settings: timeouts, retries, per-domain rate limits and TTLs.
"""
import re
from typing import Dict

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

RATE_LIMIT_PATTERN = re.compile(r"^\s*(\d+)\s*/\s*(\d+\s*)?(second|minute|hour|day)s?\s*$")


class NetworkSettings(BaseSettings):
    """
    Defines how the request executor talks to third-party lookup services.

    Rate limits use the same "<requests>/<period>" notation as the rest of the
    stack (e.g. "45/minute", "1/second", "1000/hour"). A multiplier may be given
    for the period ("100/5 minutes").

    Performance Note:
        - BATCH_DEBOUNCE_SECONDS trades a little latency for better grouping of
          rate-limited requests; keep it well below the shortest window.
    """
    HTTP_USER_AGENT: str = "geo-resolver/0.1"
    HTTP_DEFAULT_TIMEOUT: float = Field(gt=0, default=8.0)
    HTTP_DEFAULT_RETRIES: int = Field(ge=0, default=3)
    HTTP_BACKOFF_BASE: float = Field(gt=0, default=1.0)
    HTTP_BACKOFF_MAX: float = Field(gt=0, default=10.0)

    BATCH_SIZE: int = Field(ge=1, default=5)
    BATCH_DEBOUNCE_SECONDS: float = Field(ge=0, default=0.1)

    CIRCUIT_FAILURE_THRESHOLD: int = Field(ge=1, default=5)
    CIRCUIT_RESET_TIMEOUT: float = Field(gt=0, default=30.0)

    DOMAIN_RATE_LIMITS: Dict[str, str] = Field(
        default_factory=lambda: {
            "nominatim.openstreetmap.org": "1/second",
            "ipapi.co": "1000/minute",
            "ip-api.com": "45/minute",
            "timeapi.io": "100/minute",
            "api.geonames.org": "1000/hour",
        }
    )
    DOMAIN_CACHE_TTLS: Dict[str, int] = Field(
        default_factory=lambda: {
            "nominatim.openstreetmap.org": 60 * 60,
            "ipapi.co": 30 * 60,
            "ip-api.com": 30 * 60,
            "timeapi.io": 60 * 60,
            "api.geonames.org": 60 * 60,
        }
    )
    DEFAULT_CACHE_TTL: int = Field(gt=0, default=15 * 60)
    RESPONSE_CACHE_MAX_SIZE: int = Field(ge=1, default=1000)

    NOMINATIM_BASE_URL: str = "https://nominatim.openstreetmap.org"

    @field_validator("DOMAIN_RATE_LIMITS")
    @classmethod
    def validate_rate_limits(cls, v: Dict[str, str]) -> Dict[str, str]:
        """
        Rejects rate limit strings that cannot be parsed.

        Args:
            v: Mapping of domain to "<requests>/<period>" strings.

        Returns:
            The mapping with lower-cased domains.
        """
        normalized = {}
        for domain, limit in v.items():
            if not RATE_LIMIT_PATTERN.match(limit):
                raise ValueError(f"Invalid rate limit for {domain}: {limit!r}")
            normalized[domain.strip().lower()] = limit
        return normalized
