"""Application lifecycle management.

This module handles application startup and shutdown events, ensuring the
location service is started with the application and closed with it.
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI

from geo_resolver.core.config.settings import Settings
from geo_resolver.core.logging import logger
from geo_resolver.domain.services.resolution.orchestrator import LocationService
from geo_resolver.infrastructure.dependency_injection.location_dependencies import create_location_service

ServiceFactory = Callable[[Settings], LocationService]


def create_lifespan_manager(settings: Settings, service_factory: Optional[ServiceFactory] = None):
    """Create the application lifespan manager.

    Args:
        settings: Settings the service graph is built from.
        service_factory: Builds the `LocationService`; defaults to
            `create_location_service`.

    Returns:
        AsyncContextManager: The lifespan manager for the FastAPI application
    """
    factory = service_factory or create_location_service

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = factory(settings)
        service.start()
        app.state.settings = settings
        app.state.location_service = service
        logger.info("application_startup", env=settings.APP_ENV, version=settings.VERSION)

        try:
            yield
        finally:
            await service.aclose()
            logger.info("application_shutdown", env=settings.APP_ENV)

    return lifespan
