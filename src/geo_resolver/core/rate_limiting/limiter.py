"""Fixed-window request counter keyed by remote domain."""

from typing import Dict, Mapping, Optional, Union

from geo_resolver.core.clock import Clock, system_clock
from geo_resolver.core.logging import logger

from .value_objects import DomainRateLimit, RateLimitState


class DomainRateLimiter:
    """Tracks one fixed window per configured domain.

    Domains without a configured limit are always allowed. A denied request is
    reported with ``False``; it is the caller's job to queue it. The limiter is
    synchronous, so a consume decision never straddles an ``await``.
    """

    def __init__(
        self,
        limits: Optional[Mapping[str, Union[DomainRateLimit, str]]] = None,
        clock: Clock = system_clock,
    ):
        self._limits: Dict[str, DomainRateLimit] = {}
        for domain, limit in (limits or {}).items():
            if isinstance(limit, str):
                limit = DomainRateLimit.from_rate_string(limit)
            self._limits[domain.lower()] = limit
        self._states: Dict[str, RateLimitState] = {}
        self._clock = clock

    def limit_for(self, domain: str) -> Optional[DomainRateLimit]:
        """Return the configured budget for a domain, if any."""
        return self._limits.get(domain.lower())

    def spacing_for(self, domain: str) -> float:
        """Seconds between sequential requests to a domain (0 when unlimited)."""
        limit = self.limit_for(domain)
        return limit.spacing if limit else 0.0

    def try_consume(self, domain: str) -> bool:
        """Consume one request from the domain's current window.

        Args:
            domain: Host name of the remote service.

        Returns:
            bool: True if the request may proceed now, False if the window is
            exhausted.
        """
        domain = domain.lower()
        limit = self._limits.get(domain)
        if limit is None:
            return True

        now = self._clock()
        state = self._states.get(domain)

        if state is None or state.is_expired(now):
            self._states[domain] = RateLimitState(count=1, window_reset_at=now + limit.window_seconds)
            return True

        if state.count < limit.requests:
            state.count += 1
            return True

        logger.debug(
            "domain_rate_limit_exhausted",
            domain=domain,
            count=state.count,
            resets_in=round(state.window_reset_at - now, 3),
        )
        return False

    def retry_after(self, domain: str) -> float:
        """Seconds until the domain's current window resets (0 if it has capacity)."""
        domain = domain.lower()
        limit = self._limits.get(domain)
        state = self._states.get(domain)
        if limit is None or state is None:
            return 0.0
        now = self._clock()
        if state.is_expired(now) or state.count < limit.requests:
            return 0.0
        return state.window_reset_at - now

    def reset(self, domain: Optional[str] = None) -> None:
        """Forget window state for one domain, or all domains."""
        if domain is None:
            self._states.clear()
        else:
            self._states.pop(domain.lower(), None)

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        """Current window state per domain, for stats endpoints."""
        return {
            domain: {"count": state.count, "window_reset_at": state.window_reset_at}
            for domain, state in list(self._states.items())
        }
