"""
Snapshot stores for cache persistence.

A snapshot store keeps exactly one serialized document under one fixed key. It
is deliberately dumb: the cache decides what goes in and what is still valid
when it comes back out. Stores never raise; a failed read looks like an empty
store and a failed write is logged.

**Durability Note**: snapshots are best-effort. Nothing guarantees the last
write survived a crash, and readers must tolerate truncated or foreign data.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import redis
import structlog

logger = structlog.get_logger(__name__)


class SnapshotStore(ABC):
    """Abstract storage for a single serialized cache snapshot."""

    @abstractmethod
    def load(self) -> Optional[str]:
        """Return the stored document, or None if there is none or it cannot be read."""

    @abstractmethod
    def save(self, payload: str) -> bool:
        """Replace the stored document. Returns False if the write failed."""


class FileSnapshotStore(SnapshotStore):
    """Keeps the snapshot in a JSON file, written atomically via a temp file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("snapshot_file_read_failed", path=str(self.path), error=str(e))
            return None

    def save(self, payload: str) -> bool:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(self.path)
            return True
        except OSError as e:
            logger.warning("snapshot_file_write_failed", path=str(self.path), error=str(e))
            return False


class RedisSnapshotStore(SnapshotStore):
    """Keeps the snapshot under a single Redis key.

    Uses the synchronous client: cache mutations are synchronous and a single
    small SET per mutation does not justify threading an event loop through
    every cache call.
    """

    def __init__(self, client: redis.Redis, key: str):
        self.client = client
        self.key = key

    @classmethod
    def from_url(cls, url: str, key: str) -> "RedisSnapshotStore":
        return cls(redis.Redis.from_url(url, encoding="utf-8", decode_responses=True), key)

    def load(self) -> Optional[str]:
        try:
            value = self.client.get(self.key)
        except redis.RedisError as e:
            logger.warning("snapshot_redis_read_failed", key=self.key, error=str(e))
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return value

    def save(self, payload: str) -> bool:
        try:
            self.client.set(self.key, payload)
            return True
        except redis.RedisError as e:
            logger.warning("snapshot_redis_write_failed", key=self.key, error=str(e))
            return False
