"""
Request Executor

Single entry point for every outbound lookup. For each `RequestConfig` it:

1. returns a fresh cached response when the request carries a cache key
2. fails fast with `CircuitOpenError` while the domain's breaker is open
3. hands the request to the batch queue when the domain's rate limit is spent
4. otherwise performs the GET, retrying transient failures with exponential
   backoff (tenacity), caching the JSON body under the domain's TTL

Timeouts and definitive client errors (4xx other than 408/429) are not
retried. One breaker failure is recorded per request that ultimately fails;
a definitive 4xx counts as the service being reachable.

httpx errors never escape this module: they are wrapped in `NetworkError`.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from geo_resolver.core.circuit_breaker import CircuitBreaker
from geo_resolver.core.clock import Clock, Sleep, async_sleep, system_clock
from geo_resolver.core.exceptions import CircuitOpenError, NetworkError
from geo_resolver.core.rate_limiting import DomainRateLimiter
from geo_resolver.infrastructure.cache.intelligent_cache import IntelligentCache

from .batch_queue import BatchQueue
from .request import RequestConfig, RequestResult

logger = structlog.get_logger(__name__)

RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})
DEFAULT_USER_AGENT = "geo-resolver/0.1"
DEFAULT_TIMEOUT = 8.0
DEFAULT_RETRIES = 3


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, NetworkError) and error.retryable and not error.timed_out


class RequestExecutor:
    """Executes JSON GET requests with caching, breaking, limiting and retries.

    Args:
        client: Shared `httpx.AsyncClient`. One is created (and owned) when omitted.
        limiter: Per-domain rate limiter.
        breaker: Per-domain circuit breaker.
        response_cache: Cache for successful responses.
        domain_ttls: Seconds to cache responses per domain.
        default_ttl: Seconds to cache responses from other domains.
        default_timeout / default_retries: Used for configs that leave
            `timeout` or `retries` unset.
        backoff_base / backoff_max: Exponential backoff parameters in seconds.
        batch_size / batch_debounce: Batch queue tuning.
        user_agent: User-Agent header of the owned client.
        clock / sleep: Time sources (simulated in tests).
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        limiter: Optional[DomainRateLimiter] = None,
        breaker: Optional[CircuitBreaker] = None,
        response_cache: Optional[IntelligentCache[Any]] = None,
        domain_ttls: Optional[Mapping[str, float]] = None,
        default_ttl: float = 15 * 60,
        default_timeout: float = DEFAULT_TIMEOUT,
        default_retries: int = DEFAULT_RETRIES,
        backoff_base: float = 1.0,
        backoff_max: float = 10.0,
        batch_size: int = 5,
        batch_debounce: float = 0.1,
        user_agent: str = DEFAULT_USER_AGENT,
        clock: Clock = system_clock,
        sleep: Sleep = async_sleep,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            follow_redirects=True,
        )
        self.limiter = limiter or DomainRateLimiter(clock=clock)
        self.breaker = breaker or CircuitBreaker(clock=clock, name="http")
        self.response_cache = response_cache or IntelligentCache(
            "geo-resolver-response-cache", max_size=1000, default_ttl=default_ttl, clock=clock, sleep=sleep
        )
        self.domain_ttls = {domain.lower(): ttl for domain, ttl in (domain_ttls or {}).items()}
        self.default_ttl = default_ttl
        self.default_timeout = default_timeout
        self.default_retries = default_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._clock = clock
        self._sleep = sleep
        self.queue = BatchQueue(
            self._fetch,
            self.limiter,
            batch_size=batch_size,
            debounce=batch_debounce,
            clock=clock,
            sleep=sleep,
        )

    def ttl_for(self, domain: str) -> float:
        return self.domain_ttls.get(domain.lower(), self.default_ttl)

    def timeout_for(self, config: RequestConfig) -> float:
        return self.default_timeout if config.timeout is None else config.timeout

    def retries_for(self, config: RequestConfig) -> int:
        return self.default_retries if config.retries is None else config.retries

    async def execute(self, config: RequestConfig) -> Any:
        """Perform one request and return its decoded JSON body.

        Raises:
            CircuitOpenError: The domain's breaker is open.
            NetworkError: The request ultimately failed.
        """
        if config.cache_key:
            cached = self.response_cache.get(config.cache_key)
            if cached is not None:
                logger.debug("response_cache_hit", cache_key=config.cache_key)
                return cached

        domain = config.domain
        if self.breaker.is_open(domain):
            raise CircuitOpenError(domain)

        if not self.limiter.try_consume(domain):
            logger.info("request_rate_limited_queued", domain=domain, priority=config.priority.value)
            return await self.queue.enqueue(config)

        return await self._fetch(config)

    async def execute_many(self, configs: Sequence[RequestConfig]) -> List[RequestResult]:
        """Run requests concurrently and report every outcome, in input order."""
        return list(await asyncio.gather(*(self._settle(config) for config in configs)))

    async def _settle(self, config: RequestConfig) -> RequestResult:
        started = self._clock()
        from_cache = bool(config.cache_key) and self.response_cache.has(config.cache_key)
        try:
            data = await self.execute(config)
        except Exception as e:
            return RequestResult(success=False, error=e, duration=self._clock() - started)
        return RequestResult(success=True, data=data, duration=self._clock() - started, from_cache=from_cache)

    async def _fetch(self, config: RequestConfig) -> Any:
        """Breaker-guarded, retried network call. Rate budget is the caller's concern."""
        domain = config.domain
        if not self.breaker.allow_request(domain):
            raise CircuitOpenError(domain)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retries_for(config) + 1),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            data = await retrying(self._attempt, config, domain)
        except NetworkError as e:
            if e.is_client_error:
                self.breaker.record_success(domain)
            else:
                self.breaker.record_failure(domain)
            logger.warning(
                "request_failed",
                domain=domain,
                url=config.url,
                status_code=e.status_code,
                timed_out=e.timed_out,
                error=e.message,
            )
            raise
        except asyncio.CancelledError:
            self.breaker.release_trial(domain)
            raise
        except Exception as e:
            # Outside the httpx error hierarchy (invalid URL, stream or transport bugs).
            self.breaker.record_failure(domain)
            logger.error(
                "request_failed_unexpectedly",
                domain=domain,
                url=config.url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        self.breaker.record_success(domain)
        if config.cache_key:
            self.response_cache.set(config.cache_key, data, ttl=self.ttl_for(domain), source=domain)
        return data

    async def _attempt(self, config: RequestConfig, domain: str) -> Any:
        timeout = self.timeout_for(config)
        try:
            response = await self._client.get(
                config.url,
                params=config.params,
                headers=config.headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request to {domain} timed out after {timeout:g}s",
                domain=domain,
                retryable=False,
                timed_out=True,
                code="network_timeout",
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {domain} failed: {e}", domain=domain) from e

        status = response.status_code
        if not response.is_success:
            retryable = status >= 500 or status in RETRYABLE_CLIENT_STATUSES
            raise NetworkError(
                f"{domain} responded with HTTP {status}",
                domain=domain,
                status_code=status,
                retryable=retryable,
                code="http_status_error",
            )

        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(
                f"{domain} returned a body that is not JSON",
                domain=domain,
                status_code=status,
                retryable=False,
                code="invalid_response",
            ) from e

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info(
            "request_retry_scheduled",
            attempt=retry_state.attempt_number,
            delay=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(error),
        )

    def stats(self) -> Dict[str, Any]:
        return {
            "queue_length": len(self.queue),
            "queue_processing": self.queue.is_processing,
            "response_cache_size": self.response_cache.size(),
            "rate_limits": self.limiter.snapshot(),
            "circuit_breakers": self.breaker.snapshot(),
        }

    def clear_cache(self) -> None:
        self.response_cache.clear()

    async def aclose(self) -> None:
        await self.queue.aclose()
        if self._owns_client:
            await self._client.aclose()
