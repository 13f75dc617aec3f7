"""Location endpoints.

All endpoints delegate to the `LocationService` created by the application
lifespan. Malformed queries surface as `InvalidQueryError` and are mapped to
400 by the exception handlers; lookups without a result return 404.
"""

from fastapi import APIRouter, HTTPException, Query, status

from geo_resolver.infrastructure.dependency_injection.location_dependencies import LocationServiceDep

from .schemas import CacheClearedResponse, LocationResponse, StatsResponse

router = APIRouter()


@router.get("", response_model=LocationResponse)
async def get_location(service: LocationServiceDep, refresh: bool = False) -> LocationResponse:
    """Current location; `refresh=true` forces a new resolution pass."""
    record = await service.detect_location(force_refresh=refresh)
    return LocationResponse.from_record(record)


@router.get("/reverse", response_model=LocationResponse)
async def reverse_geocode(
    service: LocationServiceDep,
    lat: float = Query(..., description="Latitude in degrees"),
    lon: float = Query(..., description="Longitude in degrees"),
) -> LocationResponse:
    record = await service.reverse_geocode(lat, lon)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No place found near these coordinates")
    return LocationResponse.from_record(record)


@router.get("/geocode", response_model=LocationResponse)
async def geocode(service: LocationServiceDep, q: str = Query(..., description="Place name")) -> LocationResponse:
    record = await service.geocode_location(q)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No place matches this query")
    return LocationResponse.from_record(record)


@router.delete("/cache", response_model=CacheClearedResponse)
async def clear_cache(service: LocationServiceDep) -> CacheClearedResponse:
    service.clear_cache()
    return CacheClearedResponse()


@router.get("/stats", response_model=StatsResponse)
async def stats(service: LocationServiceDep) -> StatsResponse:
    cache_stats = service.get_cache_stats()
    return StatsResponse(
        location_cache=cache_stats["location_cache"],
        executor=cache_stats.get("executor"),
        current_location_stale=service.is_location_stale(),
    )
