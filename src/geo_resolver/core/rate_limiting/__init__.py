"""Per-domain fixed-window rate limiting for outbound requests.

Third-party lookup services publish request budgets per host (for example
Nominatim allows one request per second). The limiter tracks one fixed window
per domain and never raises on exhaustion; callers decide whether to queue.
"""

from .limiter import DomainRateLimiter
from .value_objects import DomainRateLimit, RateLimitState

__all__ = [
    "DomainRateLimit",
    "DomainRateLimiter",
    "RateLimitState",
]
