"""
Tests for timezone → Browserbase region selection.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from pilot.browser.region import (
    DEFAULT_REGION,
    OFFSET_RANGES,
    Region,
    select_region,
    utc_offset_hours,
)

WINTER = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
SUMMER = datetime(2024, 7, 15, 12, 0, tzinfo=timezone.utc)


class TestExactAndPrefix:

    @pytest.mark.parametrize("tz", [
        "America/New_York",
        "America/Detroit",
        "America/Toronto",
        "America/Montreal",
        "America/Boston",
        "America/Chicago",
    ])
    def test_east_coast_cities(self, tz):
        assert select_region(tz) is Region.US_EAST_1

    @pytest.mark.parametrize("tz,expected", [
        ("America/Los_Angeles", Region.US_WEST_2),
        ("America/Denver", Region.US_WEST_2),
        ("US/Pacific", Region.US_WEST_2),
        ("Canada/Pacific", Region.US_WEST_2),
        ("Europe/Berlin", Region.EU_CENTRAL_1),
        ("Africa/Lagos", Region.EU_CENTRAL_1),
        ("Asia/Tokyo", Region.AP_SOUTHEAST_1),
        ("Asia/Kolkata", Region.AP_SOUTHEAST_1),
        ("Australia/Sydney", Region.AP_SOUTHEAST_1),
        ("Pacific/Auckland", Region.AP_SOUTHEAST_1),
    ])
    def test_continent_prefix(self, tz, expected):
        assert select_region(tz) is expected

    def test_prefix_does_not_need_a_real_zone(self):
        assert select_region("Europe/Atlantis") is Region.EU_CENTRAL_1


class TestOffsetFallback:

    @pytest.mark.parametrize("tz,expected", [
        ("Etc/GMT-9", Region.AP_SOUTHEAST_1),   # UTC+9
        ("Etc/GMT+8", Region.US_WEST_2),        # UTC-8
        ("Etc/GMT+3", Region.EU_CENTRAL_1),     # UTC-3
        ("Etc/GMT-4", Region.EU_CENTRAL_1),     # UTC+4
        ("Etc/GMT-5", Region.AP_SOUTHEAST_1),   # UTC+5
        ("UTC", Region.EU_CENTRAL_1),
        ("Atlantic/Azores", Region.EU_CENTRAL_1),
        ("Indian/Maldives", Region.AP_SOUTHEAST_1),
    ])
    def test_offset_ranges(self, tz, expected):
        assert select_region(tz, now=WINTER) is expected

    def test_offset_ranges_cover_every_hour(self):
        for hours in range(-24, 25):
            assert any(r.contains(hours) for r in OFFSET_RANGES)


class TestDefaults:

    @pytest.mark.parametrize("tz", [None, "", "Not/A_Zone", "garbage", "Etc/GMT+99"])
    def test_unknown_input_yields_default(self, tz):
        assert select_region(tz) is DEFAULT_REGION

    def test_default_is_us_west_2(self):
        assert DEFAULT_REGION is Region.US_WEST_2


class TestUtcOffsetHours:

    def test_whole_hours(self):
        assert utc_offset_hours("Etc/GMT-9") == 9
        assert utc_offset_hours("UTC") == 0

    def test_fractional_offsets_are_floored(self):
        assert utc_offset_hours("Asia/Kolkata", WINTER) == 5          # +5:30
        assert utc_offset_hours("America/St_Johns", WINTER) == -4     # -3:30

    def test_daylight_saving_changes_offset(self):
        assert utc_offset_hours("Europe/Berlin", WINTER) == 1
        assert utc_offset_hours("Europe/Berlin", SUMMER) == 2

    def test_naive_instant_treated_as_utc(self):
        assert utc_offset_hours("Etc/GMT-3", datetime(2024, 1, 1)) == 3

    def test_unknown_zone_raises(self):
        with pytest.raises(Exception):
            utc_offset_hours("Not/A_Zone")
