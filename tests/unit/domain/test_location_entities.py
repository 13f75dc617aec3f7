import math

import pytest

from geo_resolver.domain.entities import LocationCandidate, LocationRecord


def _record(**overrides):
    values = dict(
        city="Berlin",
        country="Germany",
        lat=52.52,
        lon=13.405,
        timezone="Europe/Berlin",
        quality=85,
        confidence=0.9,
        source="geocoding",
        timestamp=1_700_000_000.0,
    )
    values.update(overrides)
    return LocationRecord(**values)


@pytest.mark.parametrize(
    "field,value",
    [
        ("lat", 90.5),
        ("lat", -91),
        ("lon", 180.01),
        ("quality", 101),
        ("quality", -1),
        ("confidence", 1.5),
        ("lat", math.nan),
        ("lon", "13.4"),
    ],
)
def test_location_record_enforces_ranges(field, value):
    with pytest.raises(ValueError):
        _record(**{field: value})


def test_location_record_accepts_boundaries():
    record = _record(lat=-90, lon=180, quality=0, confidence=1)

    assert record.lat == -90


def test_coordinate_key_rounds_to_four_decimals():
    assert _record(lat=52.520008, lon=13.404954).coordinate_key == "coords:52.5200,13.4050"


def test_age():
    assert _record().age(now=1_700_000_060.0) == 60


def test_dict_round_trip_ignores_unknown_keys():
    record = _record(state="Berlin", postal="10117")
    data = {**record.to_dict(), "legacy_field": "ignored"}

    assert LocationRecord.from_dict(data) == record


def test_from_candidate_defaults_timezone_and_overrides_source():
    candidate = LocationCandidate(city="Oia", country="Greece", lat="36.46", lon=25.37, source="ip")

    record = LocationRecord.from_candidate(candidate, quality=50, confidence=0.6, timestamp=1.0, source="geocoding")

    assert record.timezone == "UTC"
    assert record.source == "geocoding"
    assert record.lat == 36.46
    assert record.timestamp == 1.0


def test_to_candidate_round_trip():
    record = _record(accuracy="Geocoded")

    candidate = record.to_candidate()

    assert isinstance(candidate, LocationCandidate)
    assert candidate.city == "Berlin"
    assert candidate.quality == 85
    assert candidate.accuracy == "Geocoded"


def test_candidate_from_mapping_fills_required_fields():
    candidate = LocationCandidate.from_mapping({"city": "Rome", "unexpected": 1})

    assert candidate.city == "Rome"
    assert candidate.country is None
    assert candidate.lat is None
    assert candidate.source == "unknown"


def test_with_updates_returns_copy():
    candidate = LocationCandidate(city="Rome", country="Italy", lat=41.9, lon=12.5)

    updated = candidate.with_updates(confidence=0.8)

    assert updated.confidence == 0.8
    assert candidate.confidence is None
