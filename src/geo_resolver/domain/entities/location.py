"""Location Domain Entities

- LocationCandidate: an unvalidated guess produced by one detection strategy.
  It may hold anything a provider returned (including out-of-range numbers);
  it only becomes trustworthy after sanitizing and validation.
- LocationRecord: the canonical resolved location handed to consumers.
  Construction enforces the numeric invariants.

Both convert to and from plain dicts so they can cross JSON boundaries (cache
snapshots, API responses) without leaking internal types.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional

from geo_resolver.core.clock import system_clock


@dataclass
class LocationCandidate:
    """Unvalidated location guess from a single strategy."""

    city: Optional[str]
    country: Optional[str]
    lat: Any
    lon: Any
    timezone: Optional[str] = None
    accuracy: Optional[str] = None
    source: str = "unknown"
    confidence: Any = None
    state: Optional[str] = None
    region: Optional[str] = None
    postal: Optional[str] = None
    address: Optional[str] = None
    quality: Any = None
    timestamp: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> LocationCandidate:
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values.setdefault("city", None)
        values.setdefault("country", None)
        values.setdefault("lat", None)
        values.setdefault("lon", None)
        return cls(**values)

    def with_updates(self, **changes: Any) -> LocationCandidate:
        return replace(self, **changes)


@dataclass
class LocationRecord:
    """Validated, scored, canonical location.

    Invariants: lat in [-90, 90], lon in [-180, 180], quality in [0, 100],
    confidence in [0, 1]. `timestamp` is epoch seconds of the detection.
    """

    city: str
    country: str
    lat: float
    lon: float
    timezone: str
    quality: float
    confidence: float
    source: str
    timestamp: float = field(default_factory=system_clock)
    state: Optional[str] = None
    region: Optional[str] = None
    postal: Optional[str] = None
    address: Optional[str] = None
    accuracy: Optional[str] = None

    def __post_init__(self):
        for name, low, high in (
            ("lat", -90.0, 90.0),
            ("lon", -180.0, 180.0),
            ("quality", 0.0, 100.0),
            ("confidence", 0.0, 1.0),
        ):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or math.isnan(value) or not low <= value <= high:
                raise ValueError(f"{name} must be within [{low:g}, {high:g}], got {value!r}")

    @property
    def coordinate_key(self) -> str:
        """Cache key derived from coordinates rounded to four decimals (~11 m)."""
        return f"coords:{self.lat:.4f},{self.lon:.4f}"

    def age(self, now: Optional[float] = None) -> float:
        return (system_clock() if now is None else now) - self.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LocationRecord:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_candidate(
        cls,
        candidate: LocationCandidate,
        quality: float,
        confidence: float,
        timestamp: Optional[float] = None,
        source: Optional[str] = None,
    ) -> LocationRecord:
        return cls(
            city=candidate.city or "",
            country=candidate.country or "",
            lat=float(candidate.lat),
            lon=float(candidate.lon),
            timezone=candidate.timezone or "UTC",
            quality=quality,
            confidence=confidence,
            source=source or candidate.source,
            timestamp=system_clock() if timestamp is None else timestamp,
            state=candidate.state,
            region=candidate.region,
            postal=candidate.postal,
            address=candidate.address,
            accuracy=candidate.accuracy,
        )

    def to_candidate(self) -> LocationCandidate:
        return LocationCandidate.from_mapping(self.to_dict())

    def with_updates(self, **changes: Any) -> LocationRecord:
        return replace(self, **changes)
