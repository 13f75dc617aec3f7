"""Response models for the location API."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from geo_resolver.domain.entities.location import LocationRecord


class LocationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    city: str
    country: str
    state: Optional[str] = None
    region: Optional[str] = None
    postal: Optional[str] = None
    address: Optional[str] = None
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    timezone: str
    accuracy: Optional[str] = None
    quality: float = Field(ge=0, le=100)
    confidence: float = Field(ge=0, le=1)
    source: str
    timestamp: float

    @classmethod
    def from_record(cls, record: LocationRecord) -> "LocationResponse":
        return cls.model_validate(record.to_dict())


class CacheClearedResponse(BaseModel):
    cleared: bool = True


class StatsResponse(BaseModel):
    location_cache: Dict[str, Any]
    executor: Optional[Dict[str, Any]] = None
    current_location_stale: bool


class HealthResponse(BaseModel):
    status: str
    env: str
    version: str
    services: Dict[str, Any]
    timestamp: datetime
