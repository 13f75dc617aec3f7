"""API v1 router configuration.
"""

from fastapi import APIRouter

from .health import router as health_router
from .location import router as location_router

api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(location_router, prefix="/location", tags=["location"])
