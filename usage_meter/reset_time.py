"""Monthly billing-cycle reset schedule."""
from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import ResetTimeInfo

logger = logging.getLogger(__name__)


def resolve_timezone(name: str) -> tzinfo:
    """Return the IANA zone *name*, or the system local zone when empty or unknown."""
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning('Unknown timezone %r, using local time', name)

    return datetime.now().astimezone().tzinfo or timezone.utc


def _month_start(year: int, month: int, hour: int, tz: tzinfo) -> datetime:
    if month > 12:
        year, month = year + 1, 1
    elif month < 1:
        year, month = year - 1, 12
    return datetime(year, month, 1, hour, tzinfo=tz)


def calculate_reset_info(reset_hour: int = 0, timezone_name: str = '', now: datetime | None = None) -> ResetTimeInfo:
    """Locate *now* inside the monthly billing cycle.

    The cycle resets on the first day of every month at *reset_hour* local to
    *timezone_name*.

    Parameters
    ----------
    reset_hour : int
        Hour of day (0-23) at which the cycle resets. Out-of-range values are clamped.
    timezone_name : str
        IANA timezone name; empty means system local time.
    now : datetime, optional
        Reference time (timezone-aware). Defaults to the current time.

    Returns
    -------
    ResetTimeInfo
    """
    reset_hour = max(0, min(23, int(reset_hour)))
    tz = resolve_timezone(timezone_name)
    now_local = (now or datetime.now(timezone.utc)).astimezone(tz)

    current = _month_start(now_local.year, now_local.month, reset_hour, tz)
    if now_local >= current:
        last_reset = current
        next_reset = _month_start(now_local.year, now_local.month + 1, reset_hour, tz)
    else:
        last_reset = _month_start(now_local.year, now_local.month - 1, reset_hour, tz)
        next_reset = current

    # Aware datetimes sharing a tzinfo subtract as wall-clock times; go through UTC.
    now_utc = now_local.astimezone(timezone.utc)
    cycle = next_reset.astimezone(timezone.utc) - last_reset.astimezone(timezone.utc)
    elapsed = now_utc - last_reset.astimezone(timezone.utc)
    remaining = next_reset.astimezone(timezone.utc) - now_utc

    percent = elapsed / cycle * 100 if cycle.total_seconds() > 0 else 0.0

    return ResetTimeInfo(
        next_reset_time=next_reset,
        time_until_reset=remaining,
        reset_hour=reset_hour,
        timezone=timezone_name or str(now_local.tzname() or 'local'),
        percent_until_reset=round(max(0.0, min(100.0, percent)), 1),
        days_in_cycle=(next_reset.date() - last_reset.date()).days,
        days_since_reset=elapsed.days,
    )
