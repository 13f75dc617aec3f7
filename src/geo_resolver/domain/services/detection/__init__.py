"""Location detection strategies.

Each strategy produces at most one `LocationCandidate` and never raises.
"""

from .base import DetectionStrategy
from .device import ConfiguredPositionProvider, DevicePositionStrategy, PositionProvider
from .ip_lookup import IpLookupStrategy
from .timezone import TimezoneStrategy, local_timezone_name

__all__ = [
    "ConfiguredPositionProvider",
    "DetectionStrategy",
    "DevicePositionStrategy",
    "IpLookupStrategy",
    "PositionProvider",
    "TimezoneStrategy",
    "local_timezone_name",
]
