"""
Location cache settings.
"""
from pydantic import Field
from pydantic_settings import BaseSettings


class CacheSettings(BaseSettings):
    """
    Defines settings for the intelligent location cache and its snapshot store.

    Persistence is best-effort: a corrupt or missing snapshot simply yields an
    empty cache. CACHE_BACKEND selects where the snapshot lives:
        - "memory": no persistence
        - "file": a JSON file at CACHE_FILE_PATH
        - "redis": a single key (CACHE_STORAGE_KEY) on REDIS_URL
    """
    CACHE_MAX_SIZE: int = Field(ge=1, default=50)
    CACHE_DEFAULT_TTL: int = Field(gt=0, default=30 * 60)
    CACHE_MAX_AGE: int = Field(gt=0, default=24 * 60 * 60)
    CACHE_CLEANUP_INTERVAL: int = Field(gt=0, default=10 * 60)

    CACHE_BACKEND: str = Field(default="memory", pattern="^(memory|file|redis)$")
    CACHE_FILE_PATH: str = ".geo_resolver_cache.json"
    CACHE_STORAGE_KEY: str = "geo-resolver-location-cache"
    REDIS_URL: str = "redis://localhost:6379/0"
