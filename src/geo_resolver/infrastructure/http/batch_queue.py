"""
Batch Queue

Holds requests whose domain has exhausted its rate limit and releases them as
budget frees up.

Ordering is by priority (high, medium, low), then first-in first-out. A single
processing task drains the queue:

1. wait a short debounce window so concurrent callers land in one batch
2. take up to `batch_size` requests and group them by domain
3. for each rate-limited domain, dispatch its requests one after another with
   `window / requests` seconds between them; a request that still fails the
   rate check goes back to the front of its priority tier
4. for unlimited domains, dispatch the whole group concurrently

Domains are processed in parallel. A dispatch failure rejects only the
future of the request that failed.
"""

import asyncio
import itertools
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from geo_resolver.core.clock import Clock, Sleep, async_sleep, system_clock
from geo_resolver.core.rate_limiting import DomainRateLimiter

from .request import BatchRequest, RequestConfig

logger = structlog.get_logger(__name__)

Dispatch = Callable[[RequestConfig], Awaitable[Any]]


class BatchQueue:
    """Priority queue with a single-flight, rate-aware dispatch loop.

    Args:
        dispatch: Coroutine function that performs one request. It is called
            only after the queue has secured rate budget for it.
        limiter: Limiter consulted before each dispatch of a limited domain.
        batch_size: Maximum number of requests taken per iteration.
        debounce: Seconds to wait before each batch is taken.
        clock / sleep: Time sources (simulated in tests).
    """

    def __init__(
        self,
        dispatch: Dispatch,
        limiter: DomainRateLimiter,
        batch_size: int = 5,
        debounce: float = 0.1,
        clock: Clock = system_clock,
        sleep: Sleep = async_sleep,
    ):
        self._dispatch = dispatch
        self._limiter = limiter
        self.batch_size = batch_size
        self.debounce = debounce
        self._clock = clock
        self._sleep = sleep
        self._queue: List[BatchRequest] = []
        self._ids = itertools.count(1)
        self._processing = False
        self._task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    def pending(self) -> List[BatchRequest]:
        """Snapshot of queued requests in dispatch order."""
        return list(self._queue)

    def enqueue(self, config: RequestConfig) -> "asyncio.Future[Any]":
        """Queue a request and return a future resolved with its response data."""
        future = asyncio.get_running_loop().create_future()
        request = BatchRequest(
            id=next(self._ids),
            config=config,
            priority=config.priority,
            enqueued_at=self._clock(),
            future=future,
        )
        self._insert(request)
        logger.debug(
            "batch_request_queued",
            request_id=request.id,
            domain=request.domain,
            priority=request.priority.value,
            queue_length=len(self._queue),
        )
        self._ensure_processing()
        return future

    def _insert(self, request: BatchRequest) -> None:
        # Behind everything of the same or higher priority.
        index = len(self._queue)
        for i, queued in enumerate(self._queue):
            if queued.priority.rank > request.priority.rank:
                index = i
                break
        self._queue.insert(index, request)

    def _requeue_front(self, requests: List[BatchRequest]) -> None:
        # Ahead of everything of the same priority, keeping their relative order.
        for request in reversed(requests):
            index = len(self._queue)
            for i, queued in enumerate(self._queue):
                if queued.priority.rank >= request.priority.rank:
                    index = i
                    break
            self._queue.insert(index, request)

    def _ensure_processing(self) -> None:
        if self._processing:
            return
        self._processing = True
        self._task = asyncio.get_running_loop().create_task(self._process())

    async def _process(self) -> None:
        delay = self.debounce
        batch: List[BatchRequest] = []
        try:
            while self._queue:
                await self._sleep(delay)

                batch = self._queue[: self.batch_size]
                del self._queue[: self.batch_size]

                groups: Dict[str, List[BatchRequest]] = {}
                for request in batch:
                    groups.setdefault(request.domain, []).append(request)

                requeued = await asyncio.gather(
                    *(self._dispatch_group(domain, requests) for domain, requests in groups.items())
                )

                waits = [self._limiter.retry_after(domain) for domain, denied in zip(groups, requeued) if denied]
                delay = max(self.debounce, min(waits)) if waits else self.debounce
        except asyncio.CancelledError:
            for request in batch:
                if not request.future.done() and request not in self._queue:
                    request.future.cancel()
            raise
        finally:
            self._processing = False
            self._task = None

    async def _dispatch_group(self, domain: str, requests: List[BatchRequest]) -> bool:
        """Dispatch one domain's share of a batch. Returns True if anything was requeued."""
        if self._limiter.limit_for(domain) is None:
            await asyncio.gather(*(self._run(request) for request in requests))
            return False

        spacing = self._limiter.spacing_for(domain)
        for index, request in enumerate(requests):
            if request.future.done():
                continue
            if index:
                await self._sleep(spacing)
            if not self._limiter.try_consume(domain):
                remaining = [r for r in requests[index:] if not r.future.done()]
                self._requeue_front(remaining)
                logger.debug("batch_requests_requeued", domain=domain, count=len(remaining))
                return True
            await self._run(request)
        return False

    async def _run(self, request: BatchRequest) -> None:
        if request.future.done():
            # The caller stopped waiting.
            return
        try:
            result = await self._dispatch(request.config)
        except Exception as e:
            if not request.future.done():
                request.future.set_exception(e)
            logger.debug("batch_request_failed", request_id=request.id, domain=request.domain, error=str(e))
            return
        if not request.future.done():
            request.future.set_result(result)

    async def aclose(self) -> None:
        """Stop the dispatch loop and cancel every pending request."""
        task = self._task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        # A task cancelled before its first step never reaches its finally block.
        self._processing = False
        self._task = None
        for request in self._queue:
            if not request.future.done():
                request.future.cancel()
        self._queue.clear()
