"""Request and result value objects for the executor and batch queue."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class Priority(str, Enum):
    """Dispatch priority of a queued request."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]


_PRIORITY_RANKS = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


@dataclass(frozen=True)
class RequestConfig:
    """Description of one outbound GET.

    Attributes:
        url: Absolute URL of the JSON endpoint.
        params: Query string parameters.
        headers: Extra headers, merged over the client defaults.
        timeout: Seconds allowed for each attempt; None uses the executor default.
        retries: Additional attempts after the first one; None uses the
            executor default.
        priority: Position in the batch queue if the request gets queued.
        cache_key: When set, successful responses are cached under this key.
    """
    url: str
    params: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None
    timeout: Optional[float] = None
    retries: Optional[int] = None
    priority: Priority = Priority.MEDIUM
    cache_key: Optional[str] = None

    @property
    def domain(self) -> str:
        """Host name the rate limiter and circuit breaker key on."""
        return (httpx.URL(self.url).host or "unknown").lower()


@dataclass
class BatchRequest:
    """A request waiting in the batch queue, with the future its caller awaits."""
    id: int
    config: RequestConfig
    priority: Priority
    enqueued_at: float
    future: "asyncio.Future[Any]"

    @property
    def domain(self) -> str:
        return self.config.domain


@dataclass
class RequestResult:
    """Outcome of one request in a settle-all fan-out."""
    success: bool
    data: Any = None
    error: Optional[BaseException] = field(default=None, repr=False)
    duration: float = 0.0
    from_cache: bool = False
