"""Circuit breaker for outbound calls, tracked per remote domain.

This module provides an asyncio-compatible circuit breaker that prevents
repeated calls to a lookup service that keeps failing. It follows the classic
circuit breaker pattern with closed, open, and half-open states, kept
independently for every domain the executor talks to.
"""

from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Dict, Optional, TypeVar

from geo_resolver.core.clock import Clock, system_clock
from geo_resolver.core.exceptions import CircuitOpenError
from geo_resolver.core.logging import logger

# Type variable for the protected coroutine's return value
T = TypeVar("T")

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half-open"


@dataclass
class CircuitBreakerState:
    """Failure bookkeeping for a single domain."""

    failure_count: int = 0
    last_failure_at: Optional[float] = None
    is_open: bool = False
    trial_in_flight: bool = False


class CircuitBreaker:
    """Per-domain circuit breaker for handling external service failures.

    State Transitions (per domain):
    - CLOSED: All requests are allowed. Once `failure_threshold` failures have
      been recorded, the domain transitions to OPEN.
    - OPEN: `is_open` reports True until `reset_timeout` seconds have elapsed
      since the last failure. After that the domain is HALF-OPEN.
    - HALF-OPEN: `is_open` reports False and exactly one trial request is let
      through by `allow_request`. The failure history is kept: a success
      resets the domain to CLOSED, a failure re-opens it immediately.

    The breaker holds no locks. All transitions are synchronous, so they
    cannot interleave with other coroutines on a single event loop.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        clock: Clock = system_clock,
        name: str = "default",
    ):
        """Initializes the CircuitBreaker.

        Args:
            failure_threshold (int): The number of failures required to open
                the circuit for a domain.
            reset_timeout (float): Seconds after the last failure before an
                open domain turns HALF-OPEN.
            clock (Clock): Source of epoch seconds.
            name (str): The name of the circuit breaker, used for logging.
        """
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.name = name
        self._clock = clock
        self._states: Dict[str, CircuitBreakerState] = {}

    def state_of(self, domain: str) -> str:
        """Return "closed", "open" or "half-open" for a domain."""
        state = self._states.get(domain)
        if state is None or not state.is_open:
            return CLOSED
        if self._cooled_down(state):
            return HALF_OPEN
        return OPEN

    def is_open(self, domain: str) -> bool:
        """Return True while the domain is open and still cooling down."""
        return self.state_of(domain) == OPEN

    def allow_request(self, domain: str) -> bool:
        """Decide whether a request to `domain` may be attempted now.

        In HALF-OPEN state only the first caller gets through; later callers
        are refused until that trial reports back.
        """
        current = self.state_of(domain)
        if current == CLOSED:
            return True
        if current == OPEN:
            return False

        state = self._states[domain]
        if state.trial_in_flight:
            return False
        state.trial_in_flight = True
        logger.info("circuit_breaker_half_open_trial", breaker=self.name, domain=domain)
        return True

    def record_success(self, domain: str) -> None:
        """Record a successful call, resetting the domain entirely."""
        state = self._states.pop(domain, None)
        if state is not None and state.is_open:
            logger.info("circuit_breaker_closed", breaker=self.name, domain=domain)

    def record_failure(self, domain: str) -> None:
        """Record a failed call, opening the circuit once the threshold is reached."""
        state = self._states.setdefault(domain, CircuitBreakerState())
        state.failure_count += 1
        state.last_failure_at = self._clock()
        state.trial_in_flight = False

        if state.failure_count >= self.failure_threshold:
            if not state.is_open:
                logger.warning(
                    "circuit_breaker_opened",
                    breaker=self.name,
                    domain=domain,
                    failures=state.failure_count,
                )
            state.is_open = True

    def release_trial(self, domain: str) -> None:
        """Give back a HALF-OPEN trial slot whose call never reported an outcome."""
        state = self._states.get(domain)
        if state is not None:
            state.trial_in_flight = False

    def reset(self, domain: Optional[str] = None) -> None:
        """Forget failure history for one domain, or all domains."""
        if domain is None:
            self._states.clear()
        else:
            self._states.pop(domain, None)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Current per-domain state, for stats endpoints."""
        return {
            domain: {
                "failure_count": state.failure_count,
                "last_failure_at": state.last_failure_at,
                "state": self.state_of(domain),
            }
            for domain, state in list(self._states.items())
        }

    async def execute(
        self, domain: str, func: Callable[..., Coroutine[Any, Any, T]], *args: Any, **kwargs: Any
    ) -> T:
        """Execute an async function with circuit breaker protection.

        Args:
            domain: The domain whose circuit guards the call.
            func: The async function to execute.
            *args: Positional arguments for the function.
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the function execution.

        Raises:
            CircuitOpenError: If the circuit is open for `domain`.
            Exception: Propagates exceptions from the executed function.
        """
        if not self.allow_request(domain):
            raise CircuitOpenError(domain)

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self.record_failure(domain)
            logger.error("circuit_breaker_recorded_failure", breaker=self.name, domain=domain, error=str(e))
            raise
        self.record_success(domain)
        return result

    def _cooled_down(self, state: CircuitBreakerState) -> bool:
        if state.last_failure_at is None:
            return True
        return self._clock() - state.last_failure_at >= self.reset_timeout
