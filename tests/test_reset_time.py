"""Tests for the monthly reset schedule."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from usage_meter.reset_time import calculate_reset_info, resolve_timezone


def require_zone(name: str) -> None:
    try:
        ZoneInfo(name)
    except ZoneInfoNotFoundError:
        pytest.skip(f'timezone database lacks {name}')


class TestCalculateResetInfo:
    def test_mid_month(self):
        require_zone('UTC')
        now = datetime(2026, 3, 15, 12, tzinfo=timezone.utc)
        info = calculate_reset_info(0, 'UTC', now)

        assert info.next_reset_time == datetime(2026, 4, 1, tzinfo=timezone.utc)
        assert info.time_until_reset == timedelta(days=16, hours=12)
        assert info.days_in_cycle == 31
        assert info.days_since_reset == 14
        assert info.percent_until_reset == round(14.5 / 31 * 100, 1)
        assert info.timezone == 'UTC'

    def test_before_reset_hour_on_the_first(self):
        require_zone('UTC')
        now = datetime(2026, 3, 1, 3, tzinfo=timezone.utc)
        info = calculate_reset_info(6, 'UTC', now)

        assert info.next_reset_time == datetime(2026, 3, 1, 6, tzinfo=timezone.utc)
        assert info.time_until_reset == timedelta(hours=3)
        assert info.days_in_cycle == 28
        assert info.reset_hour == 6

    def test_year_rollover(self):
        require_zone('UTC')
        now = datetime(2026, 12, 20, tzinfo=timezone.utc)
        info = calculate_reset_info(0, 'UTC', now)

        assert info.next_reset_time == datetime(2027, 1, 1, tzinfo=timezone.utc)
        assert info.days_in_cycle == 31

    def test_configured_timezone(self):
        require_zone('America/New_York')
        # 22:00 on March 31st in New York
        now = datetime(2026, 4, 1, 2, tzinfo=timezone.utc)
        info = calculate_reset_info(0, 'America/New_York', now)

        assert info.time_until_reset == timedelta(hours=2)
        assert info.next_reset_time.utcoffset() == timedelta(hours=-4)

    def test_reset_hour_is_clamped(self):
        require_zone('UTC')
        info = calculate_reset_info(30, 'UTC', datetime(2026, 3, 15, tzinfo=timezone.utc))
        assert info.reset_hour == 23

    def test_percent_stays_in_range(self):
        info = calculate_reset_info()
        assert 0 <= info.percent_until_reset <= 100
        assert info.time_until_reset > timedelta(0)


class TestResolveTimezone:
    def test_unknown_name_falls_back_to_local(self):
        tz = resolve_timezone('Not/AZone')
        assert datetime(2026, 1, 1, tzinfo=tz).utcoffset() is not None

    def test_empty_name_is_local(self):
        assert resolve_timezone('') is not None
