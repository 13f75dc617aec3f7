"""Base class for detection strategies."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from geo_resolver.domain.entities.location import LocationCandidate

logger = structlog.get_logger(__name__)


class DetectionStrategy(ABC):
    """One way of guessing the current location.

    Subclasses implement `_detect`; `detect` is the boundary that turns every
    failure into "no result".
    """

    name: str = "unknown"

    async def detect(self) -> Optional[LocationCandidate]:
        try:
            candidate = await self._detect()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("detection_strategy_failed", strategy=self.name, error=str(e), error_type=type(e).__name__)
            return None

        if candidate is None:
            logger.debug("detection_strategy_no_result", strategy=self.name)
        return candidate

    @abstractmethod
    async def _detect(self) -> Optional[LocationCandidate]:
        """Produce a candidate, or None. May raise."""
