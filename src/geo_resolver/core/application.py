"""Application factory for creating and configuring the FastAPI application.

This module provides a factory function to create a properly configured FastAPI application
with the lifespan, exception handlers and routers registered.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from geo_resolver.adapters.api.v1 import api_router
from geo_resolver.core.config.settings import Settings
from geo_resolver.core.handlers import register_exception_handlers
from geo_resolver.core.lifecycle import ServiceFactory, create_lifespan_manager


def create_application(settings: Optional[Settings] = None, service_factory: Optional[ServiceFactory] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings; the process-wide settings when omitted.
        service_factory: Optional override for building the location service.

    Returns:
        FastAPI: The configured FastAPI application instance
    """
    if settings is None:
        from geo_resolver.core.config.settings import settings as default_settings

        settings = default_settings

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Best-effort location resolution over unreliable lookup services.",
        lifespan=create_lifespan_manager(settings, service_factory),
        default_response_class=JSONResponse,
        debug=settings.DEBUG,
    )
    app.state.settings = settings

    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api/v1")

    return app
