"""
Rate Limiting Value Objects

Value objects describing per-domain request budgets and the mutable window
state the limiter keeps for each domain.

Value Objects:
- DomainRateLimit: Immutable "<requests> per <window>" budget for one host
- RateLimitState: Current fixed window of a host (count + reset time)
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_PERIODS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}
_RATE_STRING = re.compile(r"^\s*(\d+)\s*/\s*(\d+)?\s*(second|minute|hour|day)s?\s*$")


@dataclass(frozen=True, slots=True)
class DomainRateLimit:
    """
    Immutable value object representing a host's request budget.

    Business Rules:
    - requests must be positive
    - window_seconds must be positive
    - spacing is the steady-state gap between two requests
    """
    requests: int
    window_seconds: float

    def __post_init__(self):
        """Validate budget at construction time"""
        if self.requests <= 0:
            raise ValueError("requests must be positive")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

    @property
    def spacing(self) -> float:
        """Seconds to wait between two sequential requests to stay in budget"""
        return self.window_seconds / self.requests

    @property
    def requests_per_second(self) -> float:
        """Steady-state requests per second"""
        return self.requests / self.window_seconds

    @classmethod
    def from_rate_string(cls, rate_string: str) -> DomainRateLimit:
        """
        Create a budget from the rate string format (e.g., "45/minute", "100/5 minutes").

        Supported time units: second, minute, hour, day
        """
        match = _RATE_STRING.match(rate_string or "")
        if not match:
            raise ValueError(f"Invalid rate string format: {rate_string}")

        count, multiplier, period = match.groups()
        window = _PERIODS[period] * int(multiplier or 1)
        return cls(requests=int(count), window_seconds=float(window))

    def __str__(self) -> str:
        return f"{self.requests}/{self.window_seconds:g}s"


@dataclass(slots=True)
class RateLimitState:
    """Fixed window bookkeeping for one domain; reset lazily when the window ends"""
    count: int
    window_reset_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.window_reset_at

    def remaining(self, limit: DomainRateLimit) -> int:
        return max(0, limit.requests - self.count)
