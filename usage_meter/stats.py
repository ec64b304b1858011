"""Derived metrics: percentages, burn rate, depletion prediction, reset countdown.

Everything here is plain arithmetic over already-fetched numbers so both
data sources share one implementation.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta, timezone

from .models import ActualResetInfo, DailyUsage, Plan, PredictionInfo, ResetTimeInfo, Status, VelocityInfo

PLAN_LIMITS: dict[str, int] = {
    'Pro': 7_000,
    'Max5': 35_000,
    'Max20': 140_000,
}

TREND_THRESHOLD = 15  # Percent change that counts as a trend
ACCELERATION_THRESHOLD = 20
DEFAULT_PEAK_HOUR = 14


def usage_percentage(used: int, limit: int) -> float:
    return used / limit * 100 if limit > 0 else 0.0


def tokens_remaining(used: int, limit: int) -> int:
    return max(0, limit - used)


def usage_status(percentage: float, warning: float = 70, critical: float = 90) -> Status:
    if percentage >= critical:
        return 'critical'
    if percentage >= warning:
        return 'warning'
    return 'safe'


def detect_plan(token_limit: int) -> Plan:
    """Map a token limit to the smallest plan that has at least that limit."""
    if token_limit <= PLAN_LIMITS['Pro']:
        return 'Pro'
    if token_limit <= PLAN_LIMITS['Max5']:
        return 'Max5'
    if token_limit <= PLAN_LIMITS['Max20']:
        return 'Max20'
    return 'Custom'


def hour_floor(dt: datetime) -> datetime:
    return dt.replace(minute=0, second=0, microsecond=0)


def _tokens_since(hourly: Mapping[datetime, int], now: datetime, hours: int) -> int:
    start = hour_floor(now) - timedelta(hours=hours - 1)
    return sum(tokens for bucket, tokens in hourly.items() if start <= bucket <= now)


def calculate_velocity(hourly: Mapping[datetime, int], now: datetime | None = None) -> VelocityInfo:
    """Estimate the burn rate from hourly token buckets.

    Parameters
    ----------
    hourly : Mapping[datetime, int]
        Tokens per hour, keyed by the timezone-aware start of the hour.
    now : datetime, optional
        Reference time. Defaults to the current time.

    Returns
    -------
    VelocityInfo
        ``current`` is the average over the last 3 hours; trend compares it
        with the 24-hour average.
    """
    now = now or datetime.now(timezone.utc)

    current = _tokens_since(hourly, now, 3) / 3
    average_24h = _tokens_since(hourly, now, 24) / 24
    average_7d = _tokens_since(hourly, now, 24 * 7) / (24 * 7)

    trend_percent = (current - average_24h) / average_24h * 100 if average_24h > 0 else 0.0
    trend = 'stable'
    if abs(trend_percent) > TREND_THRESHOLD:
        trend = 'increasing' if trend_percent > 0 else 'decreasing'

    by_hour: dict[int, int] = defaultdict(int)
    for bucket, tokens in hourly.items():
        by_hour[bucket.astimezone().hour] += tokens
    peak_hour = max(by_hour, key=lambda h: by_hour[h]) if any(by_hour.values()) else DEFAULT_PEAK_HOUR

    return VelocityInfo(
        current=round(current),
        average_24h=round(average_24h),
        average_7d=round(average_7d),
        trend=trend,
        trend_percent=round(trend_percent, 1),
        peak_hour=peak_hour,
        is_accelerating=trend == 'increasing' and trend_percent > ACCELERATION_THRESHOLD,
    )


def calculate_prediction(
    tokens_used: int, token_limit: int, velocity: VelocityInfo, reset_info: ResetTimeInfo, now: datetime | None = None,
) -> PredictionInfo:
    """Predict when the remaining tokens run out at the current burn rate."""
    now = now or datetime.now(timezone.utc)
    remaining = tokens_remaining(tokens_used, token_limit)

    confidence = 50
    if velocity.current > 0 and velocity.average_24h > 0:
        confidence = min(95, confidence + 30)
        if abs(velocity.trend_percent) > 50:
            confidence -= 20

    depletion_time = None
    days_remaining = 0.0
    if velocity.current > 0:
        hours_remaining = remaining / velocity.current
        days_remaining = hours_remaining / 24
        depletion_time = now + timedelta(hours=hours_remaining)

    hours_until_reset = reset_info.time_until_reset.total_seconds() / 3600
    if hours_until_reset > 24:
        recommended = int(remaining // (hours_until_reset / 24))
    else:
        recommended = remaining

    return PredictionInfo(
        depletion_time=depletion_time,
        confidence=round(confidence),
        days_remaining=round(days_remaining, 1),
        recommended_daily_limit=recommended,
        on_track_for_reset=remaining > 0 and days_remaining >= hours_until_reset / 24,
    )


def format_time_remaining(delta: timedelta) -> str:
    """Return ``'2h 5m left'``, ``'5m left'``, ``'< 1m left'`` or ``'Reset available'``."""
    seconds = delta.total_seconds()
    if seconds <= 0:
        return 'Reset available'

    hours, rest = divmod(int(seconds), 3600)
    minutes = rest // 60
    if hours > 0:
        return f'{hours}h {minutes}m left'
    if minutes > 0:
        return f'{minutes}m left'
    return '< 1m left'


def actual_reset_info(next_reset: datetime, now: datetime | None = None) -> ActualResetInfo:
    now = now or datetime.now(timezone.utc)
    until = max(timedelta(0), next_reset - now)
    return ActualResetInfo(
        next_reset_time=next_reset,
        time_until_reset=until,
        formatted_time_remaining=format_time_remaining(until),
    )


def daily_from_hourly(hourly: Mapping[datetime, int]) -> list[DailyUsage]:
    """Aggregate hourly buckets into local calendar days, sorted by date."""
    days: dict[str, DailyUsage] = {}
    for bucket, tokens in hourly.items():
        key = bucket.astimezone().date().isoformat()
        day = days.setdefault(key, DailyUsage(date=key))
        day.total_tokens += tokens

    return sorted(days.values(), key=lambda d: d.date)


def filter_recent(daily: Iterable[DailyUsage], days: int, today: date | None = None) -> list[DailyUsage]:
    """Keep the entries of the last *days* calendar days, today included."""
    today = today or date.today()
    cutoff = (today - timedelta(days=days - 1)).isoformat()
    return [d for d in daily if d.date >= cutoff]


def find_today(daily: Iterable[DailyUsage], today: date | None = None) -> DailyUsage:
    key = (today or date.today()).isoformat()
    for day in daily:
        if day.date == key:
            return day
    return DailyUsage(date=key)
