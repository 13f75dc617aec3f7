"""
Intelligent Cache

Generic key/value cache whose entries carry a quality score and access
statistics. Entries leave the cache in three ways:

- lazily, when a read finds them past their TTL or older than `max_age`
- in a periodic background sweep (`start()` / `stop()`)
- through value-based eviction when a new key arrives at `max_size`

Eviction scores every entry as

    quality * 0.4 + access_frequency * 0.3 + recency * 0.3

where access_frequency is accesses per day of age and recency decays with the
hours since the last read, then drops the lowest ~10%.

Persistence is optional and best-effort: with a snapshot store configured the
whole map is written after every mutation and reloaded on construction,
silently dropping entries that have already expired.
"""

import asyncio
import json
import math
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

import structlog

from geo_resolver.core.clock import Clock, Sleep, async_sleep, system_clock

from .snapshot_store import SnapshotStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SECONDS_PER_HOUR = 60 * 60
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR
EVICTION_FRACTION = 0.1


@dataclass
class CacheEntry(Generic[T]):
    """A cached value plus the metadata the eviction policy needs."""

    data: T
    created_at: float
    expires_at: float
    quality: float
    source: str
    access_count: int
    last_accessed_at: float

    def metadata(self) -> Dict[str, Any]:
        """Everything but the value itself."""
        meta = asdict(self)
        meta.pop("data")
        return meta


class IntelligentCache(Generic[T]):
    """In-process cache with TTL, max-age and value-score eviction.

    Args:
        storage_key: Name of the snapshot, used in logs.
        max_size: Number of entries that triggers eviction on insert.
        default_ttl: Seconds an entry lives when `set` gets no `ttl`.
        max_age: Hard age limit in seconds, regardless of TTL.
        cleanup_interval: Seconds between background sweeps.
        store: Optional snapshot store for persistence.
        serializer / deserializer: Convert values to and from JSON-native data.
        clock / sleep: Time sources (simulated in tests).
    """

    def __init__(
        self,
        storage_key: str,
        max_size: int = 100,
        default_ttl: float = 30 * 60,
        max_age: float = SECONDS_PER_DAY,
        cleanup_interval: float = 5 * 60,
        store: Optional[SnapshotStore] = None,
        serializer: Optional[Callable[[T], Any]] = None,
        deserializer: Optional[Callable[[Any], T]] = None,
        clock: Clock = system_clock,
        sleep: Sleep = async_sleep,
    ):
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self.storage_key = storage_key
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.max_age = max_age
        self.cleanup_interval = cleanup_interval
        self._store = store
        self._serialize = serializer or (lambda value: value)
        self._deserialize = deserializer or (lambda value: value)
        self._clock = clock
        self._sleep = sleep
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

        self._load_from_store()

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def set(
        self,
        key: str,
        value: T,
        ttl: Optional[float] = None,
        quality: Optional[float] = None,
        source: Optional[str] = None,
    ) -> None:
        """Store `value` under `key`, evicting low-value entries if the cache is full."""
        now = self._clock()
        entry = CacheEntry(
            data=value,
            created_at=now,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
            quality=quality if quality is not None else 50,
            source=source or "unknown",
            access_count=0,
            last_accessed_at=now,
        )

        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_least_valuable(now)

        self._entries[key] = entry
        self._persist()

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None if it is missing, expired or too old."""
        entry = self._live_entry(key)
        return entry.data if entry is not None else None

    def get_with_metadata(self, key: str) -> Optional[Tuple[T, Dict[str, Any]]]:
        """Like `get`, but also return the entry's metadata."""
        entry = self._live_entry(key)
        if entry is None:
            return None
        return entry.data, entry.metadata()

    def has(self, key: str) -> bool:
        """True if a live entry exists. Does not count as an access."""
        return self._live_entry(key, touch=False) is not None

    def is_stale(self, key: str, stale_after: float = 10 * 60) -> bool:
        """True if the entry is missing, dead, or was written more than `stale_after` seconds ago."""
        entry = self._live_entry(key, touch=False)
        if entry is None:
            return True
        return self._clock() - entry.created_at > stale_after

    def delete(self, key: str) -> bool:
        deleted = self._entries.pop(key, None) is not None
        if deleted:
            self._persist()
        return deleted

    def clear(self) -> None:
        self._entries.clear()
        self._persist()

    def size(self) -> int:
        return len(self._entries)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def stats(self) -> Dict[str, Any]:
        """Summary of the cache contents."""
        entries = list(self._entries.values())
        now = self._clock()
        sources: Dict[str, int] = {}
        for entry in entries:
            sources[entry.source] = sources.get(entry.source, 0) + 1

        return {
            "size": len(entries),
            "max_size": self.max_size,
            "average_quality": sum(e.quality for e in entries) / len(entries) if entries else 0,
            "oldest_entry": min((e.created_at for e in entries), default=now),
            "newest_entry": max((e.created_at for e in entries), default=0),
            "sources": sources,
        }

    # ------------------------------------------------------------------
    # Expiry and eviction
    # ------------------------------------------------------------------

    def cleanup(self) -> int:
        """Purge every expired or over-age entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in list(self._entries.items()) if self._is_dead(entry, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("cache_cleanup", storage_key=self.storage_key, removed=len(expired))
            self._persist()
        return len(expired)

    def value_score(self, entry: CacheEntry[T], now: Optional[float] = None) -> float:
        """Composite score used by eviction; higher means more worth keeping."""
        now = self._clock() if now is None else now
        age_days = (now - entry.created_at) / SECONDS_PER_DAY
        idle_hours = (now - entry.last_accessed_at) / SECONDS_PER_HOUR
        frequency = entry.access_count / max(1.0, age_days)
        recency = 1 / max(1.0, idle_hours)
        return entry.quality * 0.4 + frequency * 0.3 + recency * 0.3

    def _evict_least_valuable(self, now: float) -> None:
        scored = sorted(
            ((self.value_score(entry, now), key) for key, entry in self._entries.items()),
            key=lambda item: item[0],
        )
        to_remove = math.ceil(self.max_size * EVICTION_FRACTION)
        evicted = [key for _, key in scored[:to_remove]]
        for key in evicted:
            del self._entries[key]
        logger.debug("cache_evicted", storage_key=self.storage_key, evicted=evicted)

    def _live_entry(self, key: str, touch: bool = True) -> Optional[CacheEntry[T]]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        if self._is_dead(entry, now):
            del self._entries[key]
            self._persist()
            return None

        if touch:
            entry.access_count += 1
            entry.last_accessed_at = now
        return entry

    def _is_dead(self, entry: CacheEntry[T], now: float) -> bool:
        return now > entry.expires_at or now - entry.created_at > self.max_age

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep on the running event loop (idempotent)."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Cancel the periodic sweep, if running."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _cleanup_loop(self) -> None:
        while True:
            await self._sleep(self.cleanup_interval)
            self.cleanup()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_from_store(self) -> None:
        if self._store is None:
            return

        raw = self._store.load()
        if not raw:
            return

        try:
            document = json.loads(raw)
        except ValueError as e:
            logger.warning("cache_snapshot_unreadable", storage_key=self.storage_key, error=str(e))
            return
        if not isinstance(document, dict):
            logger.warning("cache_snapshot_unreadable", storage_key=self.storage_key, error="not an object")
            return

        now = self._clock()
        for key, payload in document.items():
            entry = self._entry_from_payload(payload)
            if entry is not None and not self._is_dead(entry, now):
                self._entries[key] = entry
        logger.debug("cache_snapshot_loaded", storage_key=self.storage_key, entries=len(self._entries))

    def _entry_from_payload(self, payload: Any) -> Optional[CacheEntry[T]]:
        if not isinstance(payload, dict):
            return None
        try:
            return CacheEntry(
                data=self._deserialize(payload["data"]),
                created_at=float(payload["created_at"]),
                expires_at=float(payload["expires_at"]),
                quality=float(payload.get("quality", 50)),
                source=str(payload.get("source", "unknown")),
                access_count=int(payload.get("access_count", 0)),
                last_accessed_at=float(payload.get("last_accessed_at", payload["created_at"])),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def _persist(self) -> None:
        if self._store is None:
            return

        document = {}
        for key, entry in list(self._entries.items()):
            payload = entry.metadata()
            payload["data"] = self._serialize(entry.data)
            document[key] = payload

        try:
            raw = json.dumps(document)
        except (TypeError, ValueError) as e:
            logger.warning("cache_snapshot_serialize_failed", storage_key=self.storage_key, error=str(e))
            return
        self._store.save(raw)
