import pytest

from geo_resolver.core.exceptions import (
    CircuitOpenError,
    GeoResolverError,
    InvalidQueryError,
    NetworkError,
    PositionDeniedError,
    PositionError,
    PositionUnavailableError,
    RateLimitedError,
    ValidationError,
)


def test_base_error_carries_message_and_code():
    error = GeoResolverError("Something broke", code="broken")

    assert str(error) == "Something broke"
    assert error.message == "Something broke"
    assert error.code == "broken"


@pytest.mark.parametrize(
    "status_code,retryable,expected",
    [
        (404, False, True),
        (400, False, True),
        (429, True, False),
        (503, True, False),
        (None, False, False),
    ],
)
def test_network_error_client_error_classification(status_code, retryable, expected):
    error = NetworkError("failed", domain="ipapi.co", status_code=status_code, retryable=retryable)

    assert error.is_client_error is expected


def test_network_error_defaults():
    error = NetworkError("connection refused")

    assert error.code == "network_error"
    assert error.retryable is True
    assert error.timed_out is False
    assert error.domain == "unknown"


def test_circuit_open_error_names_domain():
    error = CircuitOpenError("ipapi.co")

    assert error.domain == "ipapi.co"
    assert "ipapi.co" in str(error)
    assert error.code == "circuit_open"


def test_rate_limited_error():
    error = RateLimitedError("ip-api.com")

    assert error.domain == "ip-api.com"
    assert error.code == "rate_limited"


def test_exception_hierarchy():
    assert issubclass(InvalidQueryError, ValidationError)
    assert issubclass(ValidationError, GeoResolverError)
    assert issubclass(PositionDeniedError, PositionError)
    assert issubclass(PositionUnavailableError, PositionError)
    assert InvalidQueryError("empty").code == "invalid_query"
    assert PositionDeniedError().code == "position_denied"
    assert PositionUnavailableError().code == "position_unavailable"
