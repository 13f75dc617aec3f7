"""Location validation service.

Every candidate a detection strategy produces passes through this service
before it can become a `LocationRecord`:

1. `sanitize` strips markup characters, truncates strings and clamps numbers.
2. `validate` runs the weighted rule set and scores the result.
3. `calculate_quality_score` turns the validation score into a stored quality,
   weighted by how much the producing source is trusted.

The validator accepts `LocationCandidate`, `LocationRecord` or a plain mapping,
so provider payloads can be checked before they are shaped into entities.
"""

import dataclasses
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from geo_resolver.core.clock import Clock, system_clock
from geo_resolver.domain.entities.location import LocationCandidate, LocationRecord
from geo_resolver.domain.value_objects.validation import ValidationResult, ValidationRule

logger = structlog.get_logger(__name__)

C = TypeVar("C")

ONE_YEAR = 365 * 24 * 60 * 60
FUTURE_TOLERANCE = 60
SECONDS_PER_HOUR = 60 * 60


@dataclass(frozen=True)
class CountryBounds:
    """Rough bounding box of a country."""

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon


COUNTRY_BOUNDS: Dict[str, CountryBounds] = {
    "United States": CountryBounds(24.396308, 71.538800, -179.148909, -66.885444),
    "Canada": CountryBounds(41.676555, 83.110626, -141.0, -52.636291),
    "United Kingdom": CountryBounds(49.959999, 58.635, -7.57216793459, 1.68153079591),
    "Germany": CountryBounds(47.270111, 55.058347, 5.866342, 15.041896),
    "France": CountryBounds(41.333, 51.124, -5.559, 9.662),
    "Australia": CountryBounds(-43.634597, -10.062805, 113.338953, 153.569469),
    "Japan": CountryBounds(24.396308, 45.551483, 122.933653, 153.986672),
    "India": CountryBounds(6.4627, 35.513327, 68.1766451354, 97.4025614766),
    "China": CountryBounds(18.1977, 53.561, 73.4998, 134.7728),
    "Brazil": CountryBounds(-33.75, 5.264877, -73.985535, -32.39118),
}

DEFAULT_SOURCE_RELIABILITY: Dict[str, float] = {
    "device": 1.0,
    "geocoding": 0.85,
    "ip": 0.6,
    "fallback": 0.3,
    "cache": 0.9,
}

STRING_FIELDS = ("city", "country", "state", "region", "postal", "address", "timezone", "accuracy", "source")
OPTIONAL_FIELDS = ("state", "region", "postal", "address", "timezone", "accuracy")
MAX_LENGTHS = {"city": 100, "country": 100, "state": 100, "region": 100, "address": 500, "postal": 20}


def _as_float(value: Any) -> Optional[float]:
    """Parse a number the lenient way providers send them; None if impossible."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


@lru_cache(maxsize=256)
def _is_known_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def _as_mapping(candidate: Any) -> Mapping[str, Any]:
    if dataclasses.is_dataclass(candidate) and not isinstance(candidate, type):
        return dataclasses.asdict(candidate)
    return candidate


class LocationValidator:
    """Weighted rule-set validator for location data.

    Args:
        source_reliability: Quality multiplier per source name.
        default_reliability: Multiplier for sources not listed.
        country_bounds: Bounding boxes used for the plausibility warning.
        clock: Source of epoch seconds.
    """

    MARKUP_PATTERN = re.compile(r"[<>\"'&]")

    def __init__(
        self,
        source_reliability: Optional[Mapping[str, float]] = None,
        default_reliability: float = 0.7,
        country_bounds: Optional[Mapping[str, CountryBounds]] = None,
        clock: Clock = system_clock,
    ):
        self.source_reliability = dict(
            DEFAULT_SOURCE_RELIABILITY if source_reliability is None else source_reliability
        )
        self.default_reliability = default_reliability
        self.country_bounds = dict(COUNTRY_BOUNDS if country_bounds is None else country_bounds)
        self._clock = clock
        self.rules: List[ValidationRule] = self._build_rules()

    def _build_rules(self) -> List[ValidationRule]:
        return [
            ValidationRule(
                name="valid_coordinates",
                check=self._has_valid_coordinates,
                weight=1.0,
                error_message="Invalid coordinates: latitude must be -90 to 90, longitude must be -180 to 180",
            ),
            ValidationRule(
                name="required_fields",
                check=self._has_required_fields,
                weight=0.9,
                error_message="Missing required fields: city and country are required",
            ),
            ValidationRule(
                name="valid_timezone",
                check=lambda d: _is_blank(d.get("timezone"))
                or (isinstance(d["timezone"], str) and _is_known_timezone(d["timezone"])),
                weight=0.7,
                error_message="Invalid timezone identifier",
            ),
            ValidationRule(
                name="valid_quality",
                check=lambda d: self._in_range_if_present(d.get("quality"), 0, 100),
                weight=0.4,
                error_message="Quality score must be between 0 and 100",
            ),
            ValidationRule(
                name="valid_confidence",
                check=lambda d: self._in_range_if_present(d.get("confidence"), 0, 1),
                weight=0.4,
                error_message="Confidence must be between 0 and 1",
            ),
            ValidationRule(
                name="valid_timestamp",
                check=lambda d: _is_blank(d.get("timestamp")) or self._is_reasonable_timestamp(d["timestamp"]),
                weight=0.3,
                error_message="Invalid timestamp: must be within the last year and not in future",
            ),
            ValidationRule(
                name="reasonable_accuracy",
                check=lambda d: d.get("accuracy") is None
                or (isinstance(d["accuracy"], str) and d["accuracy"].strip() != ""),
                weight=0.3,
                error_message="Invalid accuracy information",
            ),
            ValidationRule(
                name="reasonable_string_lengths",
                check=self._has_reasonable_lengths,
                weight=0.5,
                error_message="String fields exceed maximum allowed length",
            ),
        ]

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @staticmethod
    def _has_valid_coordinates(data: Mapping[str, Any]) -> bool:
        lat = _as_float(data.get("lat"))
        lon = _as_float(data.get("lon"))
        return lat is not None and lon is not None and -90 <= lat <= 90 and -180 <= lon <= 180

    @staticmethod
    def _has_required_fields(data: Mapping[str, Any]) -> bool:
        city, country = data.get("city"), data.get("country")
        return (
            isinstance(city, str)
            and isinstance(country, str)
            and city.strip() != ""
            and country.strip() != ""
        )

    @staticmethod
    def _in_range_if_present(value: Any, low: float, high: float) -> bool:
        if value is None:
            return True
        number = _as_float(value)
        return number is not None and low <= number <= high

    @staticmethod
    def _has_reasonable_lengths(data: Mapping[str, Any]) -> bool:
        for name, limit in MAX_LENGTHS.items():
            value = data.get(name)
            if _is_blank(value):
                continue
            if not isinstance(value, str) or len(value) > limit:
                return False
        return True

    def _is_reasonable_timestamp(self, value: Any) -> bool:
        timestamp = _as_float(value)
        if timestamp is None:
            return False
        now = self._clock()
        return now - ONE_YEAR <= timestamp <= now + FUTURE_TOLERANCE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(self, candidate: Any) -> ValidationResult:
        """Run every rule against the candidate and score it.

        Args:
            candidate: A `LocationCandidate`, `LocationRecord` or mapping.

        Returns:
            ValidationResult: Errors come from failed rules weighing 0.8 or
            more; everything else that failed is a warning.
        """
        data = _as_mapping(candidate)
        errors: List[str] = []
        warnings: List[str] = []
        passed_weight = 0.0
        total_weight = 0.0

        for rule in self.rules:
            total_weight += rule.weight
            if rule.check(data):
                passed_weight += rule.weight
            elif rule.is_blocking:
                errors.append(rule.error_message)
            else:
                warnings.append(rule.error_message)

        country = data.get("country")
        lat, lon = _as_float(data.get("lat")), _as_float(data.get("lon"))
        bounds = self.country_bounds.get(country) if isinstance(country, str) else None
        if bounds is not None and lat is not None and lon is not None and not bounds.contains(lat, lon):
            warnings.append(f"Coordinates appear to be outside {country} boundaries")

        score = round(passed_weight / total_weight * 100) if total_weight else 0

        confidence = min(1.0, score / 100 + self._completeness(data) * 0.2)
        confidence = max(0.0, confidence - len(warnings) * 0.1)

        return ValidationResult(
            is_valid=not errors,
            score=score,
            errors=errors,
            warnings=warnings,
            confidence=round(confidence, 2),
        )

    @staticmethod
    def _completeness(data: Mapping[str, Any]) -> float:
        present = [
            name for name in OPTIONAL_FIELDS
            if isinstance(data.get(name), str) and data[name].strip() != ""
        ]
        return len(present) / len(OPTIONAL_FIELDS)

    def sanitize(self, candidate: C) -> C:
        """Return a cleaned copy of the candidate, of the same type.

        Strings are trimmed, stripped of markup characters and truncated;
        coordinates, quality and confidence are clamped into range; an
        implausible timestamp is replaced with the current time.
        """
        data = _as_mapping(candidate)
        changes: Dict[str, Any] = {}

        for name in STRING_FIELDS:
            value = data.get(name)
            if isinstance(value, str) and value:
                limit = 500 if name == "address" else 100
                changes[name] = self.MARKUP_PATTERN.sub("", value.strip())[:limit]

        for name, low, high in (("lat", -90, 90), ("lon", -180, 180), ("quality", 0, 100), ("confidence", 0, 1)):
            number = _as_float(data.get(name))
            if number is not None:
                changes[name] = max(low, min(high, number))

        if not _is_blank(data.get("timestamp")) and not self._is_reasonable_timestamp(data["timestamp"]):
            changes["timestamp"] = self._clock()

        if dataclasses.is_dataclass(candidate) and not isinstance(candidate, type):
            return dataclasses.replace(candidate, **changes)
        return {**data, **changes}

    def reliability_of(self, source: str) -> float:
        return self.source_reliability.get(source, self.default_reliability)

    def calculate_quality_score(self, candidate: Any, source: str) -> int:
        """Quality 0-100 from the validation score, source trust and data age."""
        data = _as_mapping(candidate)
        score = self.validate(data).score * self.reliability_of(source)

        timestamp = _as_float(data.get("timestamp"))
        if timestamp:
            age_hours = (self._clock() - timestamp) / SECONDS_PER_HOUR
            if age_hours < 1:
                score += 5
            elif age_hours > 24:
                score -= min(20, age_hours / 24)

        return max(0, min(100, round(score)))

    def validate_and_enhance(
        self, candidate: LocationCandidate, source: Optional[str] = None
    ) -> Optional[LocationRecord]:
        """Sanitize, validate and score a candidate into a record.

        Returns None when the sanitized candidate still fails a blocking rule.
        """
        source = source or candidate.source
        sanitized = self.sanitize(candidate)
        result = self.validate(sanitized)
        if not result.is_valid:
            logger.debug("location_candidate_rejected", source=source, errors=result.errors)
            return None
        if result.warnings:
            logger.debug("location_candidate_warnings", source=source, warnings=result.warnings)

        return LocationRecord.from_candidate(
            sanitized,
            quality=self.calculate_quality_score(sanitized, source),
            confidence=result.confidence,
            timestamp=self._clock(),
            source=source,
        )

    def is_location_reasonable(self, lat: float, lon: float, expected_country: Optional[str] = None) -> bool:
        """Range check, plus the country's bounding box when one is known."""
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            return False
        if expected_country:
            bounds = self.country_bounds.get(expected_country)
            if bounds is not None:
                return bounds.contains(lat, lon)
        return True
