"""Placeholder stats shown when no real data has ever been fetched."""
from __future__ import annotations

import random
from datetime import date, datetime, timedelta, timezone

from .config import ZAI_DEFAULT_LIMIT
from .models import DailyUsage, PredictionInfo, ResetTimeInfo, UsageStats, VelocityInfo


def mock_daily_data(days: int, today: date | None = None) -> list[DailyUsage]:
    today = today or date.today()
    return [
        DailyUsage(date=(today - timedelta(days=i)).isoformat(), total_tokens=random.randint(500, 2499))
        for i in range(days - 1, -1, -1)
    ]


def mock_stats(reset_info: ResetTimeInfo, now: datetime | None = None) -> UsageStats:
    """Build synthetic stats; ``is_mock`` lets the UI label them as such."""
    now = now or datetime.now(timezone.utc)
    tokens_used = 25_000
    token_limit = ZAI_DEFAULT_LIMIT

    velocity = VelocityInfo(
        current=120, average_24h=100, average_7d=90,
        trend='increasing', trend_percent=20.0, peak_hour=14, is_accelerating=True,
    )
    prediction = PredictionInfo(
        depletion_time=now + timedelta(hours=138),
        confidence=85,
        days_remaining=5.75,
        recommended_daily_limit=6_500,
        on_track_for_reset=True,
    )

    return UsageStats(
        today=DailyUsage(date=now.astimezone().date().isoformat(), total_tokens=1_200),
        this_week=mock_daily_data(7),
        this_month=mock_daily_data(30),
        burn_rate=velocity.current,
        velocity=velocity,
        prediction=prediction,
        reset_info=reset_info,
        current_plan='Custom',
        token_limit=token_limit,
        tokens_used=tokens_used,
        tokens_remaining=token_limit - tokens_used,
        percentage_used=tokens_used / token_limit * 100,
        is_mock=True,
    )
