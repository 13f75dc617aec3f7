"""IP geolocation strategy: all providers at once, first usable answer wins."""

from typing import Optional, Sequence

import structlog

from geo_resolver.domain.entities.location import LocationCandidate
from geo_resolver.infrastructure.http.executor import RequestExecutor
from geo_resolver.infrastructure.http.request import RequestConfig
from geo_resolver.infrastructure.providers.ip_providers import IP_PROVIDERS, IpProvider

from .base import DetectionStrategy

logger = structlog.get_logger(__name__)


class IpLookupStrategy(DetectionStrategy):
    name = "ip"

    def __init__(self, executor: RequestExecutor, providers: Sequence[IpProvider] = IP_PROVIDERS):
        self.executor = executor
        self.providers = list(providers)

    async def _detect(self) -> Optional[LocationCandidate]:
        if not self.providers:
            return None

        configs = [
            RequestConfig(
                url=provider.url,
                timeout=provider.timeout,
                retries=provider.retries,
                priority=provider.priority,
                cache_key=provider.cache_key,
            )
            for provider in self.providers
        ]
        results = await self.executor.execute_many(configs)

        # Provider order, not completion order, decides the winner.
        for provider, result in zip(self.providers, results):
            if not result.success:
                logger.debug("ip_provider_failed", provider=provider.name, error=str(result.error))
                continue
            candidate = provider.normalize(result.data)
            if candidate is not None:
                logger.debug("ip_provider_selected", provider=provider.name, from_cache=result.from_cache)
                return candidate.with_updates(confidence=provider.confidence)
            logger.debug("ip_provider_unusable_payload", provider=provider.name)
        return None
