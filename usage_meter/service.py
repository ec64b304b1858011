"""Request/cache/fallback logic shared by all data sources."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from .config import CACHE_DURATION
from .mock import mock_stats
from .models import MenuBarData, ResetTimeInfo, UsageStats
from .reset_time import calculate_reset_info
from .stats import usage_status

logger = logging.getLogger(__name__)

_UNCHANGED: Any = object()  # lets callers pass None to clear custom_token_limit


class UsageSourceError(Exception):
    """A data source could not produce usage stats."""


class UsageService:
    """Base class for data sources.

    Subclasses implement :meth:`fetch_stats`. :meth:`get_usage_stats` adds
    caching and the fallback order: fresh cache, fresh fetch, stale cache,
    mock data.
    """

    name = 'base'

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.cache_duration = CACHE_DURATION
        self.cached_stats: UsageStats | None = None
        self.last_update: float | None = None
        self.last_error: str | None = None

        self.plan = 'auto'
        self.custom_token_limit: int | None = None
        self.menu_bar_cost_source = 'today'
        self.reset_hour = 0
        self.timezone = ''
        self.warning_threshold = 70.0
        self.critical_threshold = 90.0

    def fetch_stats(self) -> UsageStats:
        raise NotImplementedError

    def reset_info(self, now: datetime | None = None) -> ResetTimeInfo:
        return calculate_reset_info(self.reset_hour, self.timezone, now)

    def mock_stats(self) -> UsageStats:
        return mock_stats(self.reset_info())

    def _is_fresh(self) -> bool:
        return (
            self.cached_stats is not None
            and self.last_update is not None
            and self._clock() - self.last_update < self.cache_duration
        )

    def get_usage_stats(self) -> UsageStats:
        """Return current stats, served from cache while fresh."""
        if self._is_fresh():
            assert self.cached_stats is not None
            return self.cached_stats

        try:
            stats = self.fetch_stats()
        except UsageSourceError as e:
            self.last_error = str(e)
            logger.error('%s: error fetching usage stats: %s', self.name, e)

            if self.cached_stats is not None:
                logger.warning('%s: returning cached data due to error', self.name)
                return self.cached_stats

            logger.warning('%s: no cached data available, returning mock data', self.name)
            return self.mock_stats()

        self.last_error = None
        self.cached_stats = stats
        self.last_update = self._clock()
        return stats

    def get_menu_bar_data(self) -> MenuBarData:
        return self.menu_bar_data(self.get_usage_stats())

    def menu_bar_data(self, stats: UsageStats) -> MenuBarData:
        """Condense *stats* for the tray, using the configured cost source and thresholds."""
        if self.menu_bar_cost_source == 'sessionWindow' and stats.session_window is not None:
            cost = stats.session_window.total_cost
        else:
            cost = stats.today.total_cost

        return MenuBarData(
            tokens_used=stats.tokens_used,
            token_limit=stats.token_limit,
            percentage_used=stats.percentage_used,
            status=usage_status(stats.percentage_used, self.warning_threshold, self.critical_threshold),
            cost=cost,
            time_until_reset=stats.actual_reset_info.formatted_time_remaining if stats.actual_reset_info else None,
        )

    def update_configuration(
        self,
        plan: str | None = None,
        custom_token_limit: int | None = _UNCHANGED,
        menu_bar_cost_source: str | None = None,
        reset_hour: int | None = None,
        timezone: str | None = None,
        warning_threshold: float | None = None,
        critical_threshold: float | None = None,
    ) -> None:
        """Apply user settings and drop the cache so the next poll recomputes.

        Omitted options keep their value; ``custom_token_limit=None`` clears the limit.
        """
        if plan is not None:
            self.plan = plan
        if custom_token_limit is not _UNCHANGED:
            self.custom_token_limit = custom_token_limit
        if menu_bar_cost_source is not None:
            self.menu_bar_cost_source = menu_bar_cost_source
        if reset_hour is not None:
            self.reset_hour = reset_hour
        if timezone is not None:
            self.timezone = timezone
        if warning_threshold is not None:
            self.warning_threshold = warning_threshold
        if critical_threshold is not None:
            self.critical_threshold = critical_threshold
        self.cached_stats = None
        self.last_update = None

    def invalidate(self) -> None:
        """Expire the cache; the stale stats stay available as a fallback."""
        self.last_update = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
