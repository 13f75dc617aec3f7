"""Centralized, structured exception hierarchy for geo_resolver.

Each exception carries a machine-readable `code` for programmatic handling and
a human-readable `message` for logging.

Most of these never reach a caller of `LocationService.detect_location`: the
detection strategies convert every failure into "no result" and the
orchestrator degrades to a fallback record. They surface only from the
lower-level components (executor, circuit breaker) and from public entry points
when they are misused (e.g. an empty geocoding query).
"""

from typing import Final, Optional

__all__: Final = [
    "GeoResolverError",
    "NetworkError",
    "CircuitOpenError",
    "RateLimitedError",
    "ValidationError",
    "InvalidQueryError",
    "PositionError",
    "PositionUnavailableError",
    "PositionDeniedError",
]


class GeoResolverError(Exception):
    """Base exception class for all custom errors in geo_resolver.

    Attributes:
        message (str): A human-readable error message, suitable for logging.
        code (str): A unique, machine-readable error code.
    """

    message: str
    code: str = "generic_error"

    def __init__(self, message: str, code: str = "generic_error"):
        self.message = message
        self.code = code
        Exception.__init__(self, self.message)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Network errors
# ---------------------------------------------------------------------------


class NetworkError(GeoResolverError):
    """Raised when an outbound HTTP call fails.

    Wraps timeouts, transport failures and non-success statuses so callers
    never depend on the HTTP library's exception types.

    Attributes:
        domain (str): Host name of the remote service.
        status_code (Optional[int]): HTTP status, when a response was received.
        retryable (bool): Whether another attempt could plausibly succeed.
        timed_out (bool): Whether the attempt was aborted by its timeout.
    """

    def __init__(
        self,
        message: str,
        domain: str = "unknown",
        status_code: Optional[int] = None,
        retryable: bool = True,
        timed_out: bool = False,
        code: str = "network_error",
    ):
        super().__init__(message, code)
        self.domain = domain
        self.status_code = status_code
        self.retryable = retryable
        self.timed_out = timed_out

    @property
    def is_client_error(self) -> bool:
        """True for definitive 4xx answers (the request itself is wrong)."""
        return self.status_code is not None and 400 <= self.status_code < 500 and not self.retryable


class CircuitOpenError(GeoResolverError):
    """Raised when the circuit breaker for a domain is open."""

    def __init__(self, domain: str, message: Optional[str] = None, code: str = "circuit_open"):
        self.domain = domain
        super().__init__(message or f"Circuit breaker is open for {domain}", code)


class RateLimitedError(GeoResolverError):
    """Internal signal that a domain's rate limit is exhausted.

    The executor converts this into a queued request; it is never raised to
    callers of the public API.
    """

    def __init__(self, domain: str, code: str = "rate_limited"):
        self.domain = domain
        super().__init__(f"Rate limit exhausted for {domain}", code)


# ---------------------------------------------------------------------------
# Validation errors
# ---------------------------------------------------------------------------


class ValidationError(GeoResolverError):
    """Raised for general data validation failures."""

    def __init__(self, message: str, code: str = "validation_error"):
        super().__init__(message, code)


class InvalidQueryError(ValidationError):
    """Raised when a public lookup is called with malformed input.

    Raised before any network call is attempted.
    """

    def __init__(self, message: str, code: str = "invalid_query"):
        super().__init__(message, code)


# ---------------------------------------------------------------------------
# Device position errors
# ---------------------------------------------------------------------------


class PositionError(GeoResolverError):
    """Base class for device position failures."""

    def __init__(self, message: str, code: str = "position_error"):
        super().__init__(message, code)


class PositionUnavailableError(PositionError):
    """Raised when the device cannot currently report a position."""

    def __init__(self, message: str = "Device position unavailable", code: str = "position_unavailable"):
        super().__init__(message, code)


class PositionDeniedError(PositionError):
    """Raised when access to the device position is refused."""

    def __init__(self, message: str = "Device position access denied", code: str = "position_denied"):
        super().__init__(message, code)
