"""Location-specialized intelligent cache."""

from typing import Any, Optional

from geo_resolver.core.clock import Clock, Sleep, async_sleep, system_clock
from geo_resolver.domain.entities.location import LocationRecord

from .intelligent_cache import IntelligentCache
from .snapshot_store import SnapshotStore

DEFAULT_STORAGE_KEY = "geo-resolver-location-cache"

ACCURACY_BONUSES = (("GPS", 40), ("IP", 25), ("Timezone", 10))


def location_quality(record: LocationRecord) -> float:
    """Storage quality of a record, 0-100.

    This is separate from `record.quality`: it rewards how precise and how
    complete the record is, and decides how long it stays cached.
    """
    quality = (record.confidence or 0) * 50

    accuracy = record.accuracy or ""
    for marker, bonus in ACCURACY_BONUSES:
        if marker in accuracy:
            quality += bonus
            break

    if record.city and record.country:
        quality += 15
    if record.state:
        quality += 5
    if record.timezone:
        quality += 5
    if record.lat is not None and record.lon is not None:
        quality += 10

    return min(100.0, quality)


def ttl_for_quality(quality: float) -> int:
    """Seconds to keep a record of the given storage quality."""
    if quality >= 80:
        return 60 * 60
    if quality >= 60:
        return 30 * 60
    return 15 * 60


def _serialize(record: LocationRecord) -> Any:
    return record.to_dict()


def _deserialize(payload: Any) -> LocationRecord:
    if not isinstance(payload, dict):
        raise TypeError("location payload must be an object")
    return LocationRecord.from_dict(payload)


class LocationCache(IntelligentCache[LocationRecord]):
    """IntelligentCache of `LocationRecord`s with quality-derived TTLs."""

    def __init__(
        self,
        storage_key: str = DEFAULT_STORAGE_KEY,
        max_size: int = 50,
        default_ttl: float = 30 * 60,
        max_age: float = 24 * 60 * 60,
        cleanup_interval: float = 10 * 60,
        store: Optional[SnapshotStore] = None,
        clock: Clock = system_clock,
        sleep: Sleep = async_sleep,
    ):
        super().__init__(
            storage_key,
            max_size=max_size,
            default_ttl=default_ttl,
            max_age=max_age,
            cleanup_interval=cleanup_interval,
            store=store,
            serializer=_serialize,
            deserializer=_deserialize,
            clock=clock,
            sleep=sleep,
        )

    def set_location(self, key: str, record: LocationRecord, source: str = "unknown") -> None:
        quality = location_quality(record)
        self.set(key, record, ttl=ttl_for_quality(quality), quality=quality, source=source)
