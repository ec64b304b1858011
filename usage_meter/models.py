"""Value records produced by the data services and consumed by the UI."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Literal

Trend = Literal['increasing', 'decreasing', 'stable']
Status = Literal['safe', 'warning', 'critical']
Plan = Literal['Pro', 'Max5', 'Max20', 'Custom']


@dataclass
class ModelUsage:
    tokens: int = 0
    cost: float = 0.0


@dataclass
class DailyUsage:
    """Token and cost totals for one calendar day (``YYYY-MM-DD``)."""

    date: str
    total_tokens: int = 0
    total_cost: float = 0.0
    models: dict[str, ModelUsage] = field(default_factory=dict)


@dataclass
class VelocityInfo:
    """Burn rate in tokens per hour."""

    current: int
    average_24h: int
    average_7d: int
    trend: Trend
    trend_percent: float
    peak_hour: int
    is_accelerating: bool


@dataclass
class PredictionInfo:
    depletion_time: datetime | None
    confidence: int
    days_remaining: float
    recommended_daily_limit: int
    on_track_for_reset: bool


@dataclass
class ResetTimeInfo:
    """Position inside the monthly billing cycle."""

    next_reset_time: datetime
    time_until_reset: timedelta
    reset_hour: int
    timezone: str
    percent_until_reset: float
    days_in_cycle: int
    days_since_reset: int


@dataclass
class ActualResetInfo:
    """Reset reported by the data source itself (quota window or session block)."""

    next_reset_time: datetime | None
    time_until_reset: timedelta
    formatted_time_remaining: str


@dataclass
class SessionWindow:
    """A 5-hour usage block built from local logs."""

    start_time: datetime
    end_time: datetime
    total_tokens: int = 0
    total_cost: float = 0.0
    models: list[str] = field(default_factory=list)
    is_active: bool = False


@dataclass
class UsageStats:
    today: DailyUsage
    this_week: list[DailyUsage]
    this_month: list[DailyUsage]
    burn_rate: int
    velocity: VelocityInfo
    prediction: PredictionInfo
    reset_info: ResetTimeInfo
    current_plan: Plan
    token_limit: int
    tokens_used: int
    tokens_remaining: int
    percentage_used: float
    actual_reset_info: ActualResetInfo | None = None
    session_window: SessionWindow | None = None
    is_mock: bool = False

    @property
    def predicted_depleted(self) -> datetime | None:
        return self.prediction.depletion_time

    @property
    def has_cost_data(self) -> bool:
        """True when the source reports costs (the z.ai API does not)."""
        return self.today.total_cost > 0 or any(day.total_cost > 0 for day in self.this_week)


@dataclass
class MenuBarData:
    """Condensed figures shown in the tray icon and its tooltip."""

    tokens_used: int
    token_limit: int
    percentage_used: float
    status: Status
    cost: float
    time_until_reset: str | None = None
