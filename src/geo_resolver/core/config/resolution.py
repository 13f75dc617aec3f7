"""
Location resolution settings: source reliability, refresh tiers and device input.
"""
from typing import Dict, List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class ResolutionSettings(BaseSettings):
    """
    Defines how detected locations are scored and how often they are refreshed.

    SOURCE_RELIABILITY and the REFRESH_INTERVAL_* tiers are hand-tuned values;
    they are exposed as configuration so deployments can adjust them without
    code changes.
    """
    SOURCE_RELIABILITY: Dict[str, float] = Field(
        default_factory=lambda: {
            "device": 1.0,
            "geocoding": 0.85,
            "ip": 0.6,
            "fallback": 0.3,
            "cache": 0.9,
        }
    )
    DEFAULT_SOURCE_RELIABILITY: float = Field(ge=0, le=1, default=0.7)

    REFRESH_INTERVAL_HIGH: int = Field(gt=0, default=60 * 60)
    REFRESH_INTERVAL_MEDIUM: int = Field(gt=0, default=30 * 60)
    REFRESH_INTERVAL_LOW: int = Field(gt=0, default=15 * 60)
    REFRESH_RETRY_MAX: int = Field(gt=0, default=60 * 60)
    STALE_AFTER: int = Field(gt=0, default=10 * 60)
    LAST_DETECTION_MAX_AGE: int = Field(gt=0, default=5 * 60)
    FALLBACK_TTL: int = Field(gt=0, default=5 * 60)

    DEVICE_LATITUDE: Optional[float] = Field(default=None, ge=-90, le=90)
    DEVICE_LONGITUDE: Optional[float] = Field(default=None, ge=-180, le=180)
    DEVICE_POSITION_TIMEOUT: float = Field(gt=0, default=10.0)
    DEVICE_POSITION_RETRIES: int = Field(ge=1, default=3)

    LOCAL_TIMEZONE: Optional[str] = None
    IP_PROVIDERS_ENABLED: List[str] = Field(
        default_factory=lambda: ["ipapi.co", "ip-api.com", "ipinfo.io"]
    )

    @model_validator(mode="after")
    def check_device_coordinates(self) -> "ResolutionSettings":
        """Device coordinates must be configured as a pair."""
        if (self.DEVICE_LATITUDE is None) != (self.DEVICE_LONGITUDE is None):
            raise ValueError("DEVICE_LATITUDE and DEVICE_LONGITUDE must be set together")
        return self
