"""Resilient outbound HTTP: rate limiting, circuit breaking, batching, caching."""

from .batch_queue import BatchQueue
from .executor import RequestExecutor
from .request import BatchRequest, Priority, RequestConfig, RequestResult

__all__ = [
    "BatchQueue",
    "BatchRequest",
    "Priority",
    "RequestConfig",
    "RequestExecutor",
    "RequestResult",
]
