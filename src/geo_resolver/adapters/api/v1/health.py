from datetime import datetime, timezone
from typing import Any, Dict

import redis.asyncio as redis
from fastapi import APIRouter, Request
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from geo_resolver.core.circuit_breaker import OPEN
from geo_resolver.core.logging import logger
from geo_resolver.domain.services.resolution.orchestrator import LocationService
from geo_resolver.infrastructure.dependency_injection.location_dependencies import LocationServiceDep

from .schemas import HealthResponse

router = APIRouter()


async def check_redis_health(url: str) -> Dict[str, Any]:
    """Ping the snapshot Redis, retrying briefly."""
    client = redis.Redis.from_url(url, decode_responses=True)
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=0.1, max=1),
            retry=retry_if_exception_type(redis.ConnectionError),
            reraise=True,
        ):
            with attempt:
                await client.ping()
        return {"status": "healthy"}
    except redis.RedisError as e:
        logger.error("redis_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
    finally:
        await client.aclose()


def check_upstream_health(service: LocationService) -> Dict[str, Any]:
    """Lookup services whose circuit is currently open."""
    if service.executor is None:
        return {"status": "healthy", "open_circuits": []}
    breakers = service.executor.breaker.snapshot()
    open_domains = sorted(domain for domain, state in breakers.items() if state["state"] == OPEN)
    return {"status": "degraded" if open_domains else "healthy", "open_circuits": open_domains}


@router.get("", response_model=HealthResponse)
async def health_check(request: Request, service: LocationServiceDep) -> HealthResponse:
    """
    Health check covering upstream lookup services and the snapshot store.
    """
    settings = request.app.state.settings
    checks: Dict[str, Any] = {
        "upstream": check_upstream_health(service),
        "location_cache": {"status": "healthy", "size": service.cache.size()},
    }
    if settings.CACHE_BACKEND == "redis":
        checks["redis"] = await check_redis_health(settings.REDIS_URL)

    healthy = all(check["status"] == "healthy" for check in checks.values())
    return HealthResponse(
        status="ok" if healthy else "degraded",
        env=settings.APP_ENV,
        version=settings.VERSION,
        services=checks,
        timestamp=datetime.now(timezone.utc),
    )
