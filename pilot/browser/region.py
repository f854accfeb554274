"""
Region selection for Browserbase sessions.

Maps a client timezone string to the hosting region closest to the
caller. The goal is a reasonable region, not an optimal one, so every
ambiguity resolves to the default region.

Lookup order:
    1. No timezone            → default region
    2. Exact timezone name    → EXACT_TIMEZONE_REGIONS
    3. Continent prefix       → PREFIX_REGIONS
    4. Current UTC offset     → OFFSET_RANGES (floored to whole hours)

Usage:
    from pilot.browser.region import select_region

    select_region("America/New_York")   # Region.US_EAST_1
    select_region("Europe/Paris")       # Region.EU_CENTRAL_1
    select_region(None)                 # Region.US_WEST_2
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


class Region(str, Enum):
    """Browserbase data-center regions."""

    US_WEST_2 = "us-west-2"
    US_EAST_1 = "us-east-1"
    EU_CENTRAL_1 = "eu-central-1"
    AP_SOUTHEAST_1 = "ap-southeast-1"


DEFAULT_REGION = Region.US_WEST_2

# East-coast cities sit closer to us-east-1 than the America/* default.
EXACT_TIMEZONE_REGIONS: dict[str, Region] = {
    "America/New_York": Region.US_EAST_1,
    "America/Detroit": Region.US_EAST_1,
    "America/Toronto": Region.US_EAST_1,
    "America/Montreal": Region.US_EAST_1,
    "America/Boston": Region.US_EAST_1,
    "America/Chicago": Region.US_EAST_1,
}

PREFIX_REGIONS: dict[str, Region] = {
    "America": Region.US_WEST_2,
    "US": Region.US_WEST_2,
    "Canada": Region.US_WEST_2,
    "Europe": Region.EU_CENTRAL_1,
    "Africa": Region.EU_CENTRAL_1,
    "Asia": Region.AP_SOUTHEAST_1,
    "Australia": Region.AP_SOUTHEAST_1,
    "Pacific": Region.AP_SOUTHEAST_1,
}


@dataclass(frozen=True)
class OffsetRange:
    """Closed range of whole-hour UTC offsets mapped to a region."""

    min: int
    max: int
    region: Region

    def contains(self, hours: int) -> bool:
        return self.min <= hours <= self.max


OFFSET_RANGES: tuple[OffsetRange, ...] = (
    OffsetRange(-24, -4, Region.US_WEST_2),
    OffsetRange(-3, 4, Region.EU_CENTRAL_1),
    OffsetRange(5, 24, Region.AP_SOUTHEAST_1),
)


def utc_offset_hours(tz_name: str, now: Optional[datetime] = None) -> int:
    """
    Current UTC offset of `tz_name` in whole hours.

    Fractional offsets are floored (+5:30 → 5, -3:30 → -4) so the result
    always falls inside one of the integer OFFSET_RANGES.

    Raises:
        zoneinfo.ZoneInfoNotFoundError / ValueError: Unknown zone name.
    """
    instant = now or datetime.now(timezone.utc)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    offset = instant.astimezone(ZoneInfo(tz_name)).utcoffset()
    if offset is None:
        return 0
    return math.floor(offset.total_seconds() / 3600)


def select_region(
    timezone_name: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> Region:
    """
    Pick the hosting region closest to a client timezone.

    Never raises: unknown or malformed input yields DEFAULT_REGION.

    Args:
        timezone_name: IANA timezone name reported by the client.
        now: Instant used for the offset fallback (default: current time).
    """
    if not timezone_name:
        return DEFAULT_REGION

    try:
        if timezone_name in EXACT_TIMEZONE_REGIONS:
            return EXACT_TIMEZONE_REGIONS[timezone_name]

        prefix = timezone_name.split("/", 1)[0]
        if prefix in PREFIX_REGIONS:
            return PREFIX_REGIONS[prefix]

        hours = utc_offset_hours(timezone_name, now)
        for offset_range in OFFSET_RANGES:
            if offset_range.contains(hours):
                return offset_range.region
        return DEFAULT_REGION

    except Exception as e:
        logger.debug(
            "region_fallback",
            extra={"timezone": timezone_name, "error": str(e)},
        )
        return DEFAULT_REGION
