"""Timezone heuristic: the local IANA zone mapped to a representative city."""

import os
from pathlib import Path
from typing import Mapping, Optional, Union

from geo_resolver.domain.data.cities import city_for_timezone
from geo_resolver.domain.entities.location import LocationCandidate

from .base import DetectionStrategy

LOCALTIME_PATH = "/etc/localtime"
ZONEINFO_MARKER = "zoneinfo/"


def local_timezone_name(
    override: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    localtime_path: Union[str, Path] = LOCALTIME_PATH,
) -> Optional[str]:
    """Best guess at the machine's IANA zone name.

    Checks, in order: the explicit override, the TZ variable, and the target
    of the /etc/localtime symlink.
    """
    if override:
        return override

    tz = (os.environ if environ is None else environ).get("TZ", "").lstrip(":").strip()
    if tz and "/" in tz and not tz.startswith("/"):
        return tz

    try:
        target = os.readlink(localtime_path)
    except OSError:
        return None
    index = target.find(ZONEINFO_MARKER)
    if index < 0:
        return None
    return target[index + len(ZONEINFO_MARKER):] or None


class TimezoneStrategy(DetectionStrategy):
    """Low-confidence guess that needs no network."""

    name = "timezone"

    def __init__(
        self,
        timezone: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        localtime_path: Union[str, Path] = LOCALTIME_PATH,
    ):
        self.timezone = timezone
        self.environ = environ
        self.localtime_path = localtime_path

    async def _detect(self) -> Optional[LocationCandidate]:
        zone = local_timezone_name(self.timezone, self.environ, self.localtime_path)
        city = city_for_timezone(zone) if zone else None
        if city is None:
            return None
        return LocationCandidate(
            city=city.name,
            country=city.country,
            state=city.state,
            lat=city.lat,
            lon=city.lon,
            timezone=zone,
            address=f"{city.name}, {city.country}",
            accuracy="Timezone-based",
            source="timezone",
            confidence=0.3,
        )
