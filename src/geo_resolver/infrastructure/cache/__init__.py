"""Quality-aware in-process caches with optional snapshot persistence."""

from .intelligent_cache import CacheEntry, IntelligentCache
from .location_cache import LocationCache
from .snapshot_store import FileSnapshotStore, RedisSnapshotStore, SnapshotStore

__all__ = [
    "CacheEntry",
    "IntelligentCache",
    "LocationCache",
    "SnapshotStore",
    "FileSnapshotStore",
    "RedisSnapshotStore",
]
