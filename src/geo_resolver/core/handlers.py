"""
Global exception handlers for the FastAPI application.

Translates application exceptions into HTTP responses. Only misuse of the
public lookups normally reaches this layer; everything else is absorbed by
the location service.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status
from structlog import get_logger

from geo_resolver.core.exceptions import CircuitOpenError, GeoResolverError, InvalidQueryError, NetworkError

__all__ = [
    "invalid_query_error_handler",
    "upstream_error_handler",
    "geo_resolver_error_handler",
    "register_exception_handlers",
]

logger = get_logger(__name__)


async def invalid_query_error_handler(request: Request, exc: InvalidQueryError) -> JSONResponse:
    """Handles `InvalidQueryError`, returning a `400 Bad Request`."""
    logger.info("invalid_query", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": exc.message, "code": exc.code},
    )


async def upstream_error_handler(request: Request, exc: GeoResolverError) -> JSONResponse:
    """Handles upstream failures (`NetworkError`, `CircuitOpenError`), returning `503`."""
    logger.warning("upstream_unavailable", path=request.url.path, error=exc.message, code=exc.code)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": exc.message, "code": exc.code},
    )


async def geo_resolver_error_handler(request: Request, exc: GeoResolverError) -> JSONResponse:
    """Handles any other `GeoResolverError`, returning a `500 Internal Server Error`."""
    logger.error("unhandled_application_error", path=request.url.path, error=exc.message, code=exc.code)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": exc.message, "code": exc.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InvalidQueryError, invalid_query_error_handler)
    app.add_exception_handler(NetworkError, upstream_error_handler)
    app.add_exception_handler(CircuitOpenError, upstream_error_handler)
    app.add_exception_handler(GeoResolverError, geo_resolver_error_handler)
