"""Tests for the shared cache and fallback order of data sources."""

from __future__ import annotations

from conftest import make_reset_info

from usage_meter.mock import mock_stats
from usage_meter.models import UsageStats
from usage_meter.service import UsageService, UsageSourceError


class ScriptedService(UsageService):
    """Returns queued results; exceptions in the queue are raised."""

    name = 'scripted'

    def __init__(self, results, clock) -> None:
        super().__init__(clock)
        self.results = list(results)
        self.calls = 0

    def fetch_stats(self) -> UsageStats:
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def real_stats(tokens_used: int = 1_000) -> UsageStats:
    stats = mock_stats(make_reset_info(24))
    stats.is_mock = False
    stats.tokens_used = tokens_used
    return stats


def test_fetch_then_cache(clock):
    stats = real_stats()
    service = ScriptedService([stats], clock)

    assert service.get_usage_stats() is stats
    assert service.get_usage_stats() is stats
    assert service.calls == 1


def test_cache_expires(clock):
    first, second = real_stats(1), real_stats(2)
    service = ScriptedService([first, second], clock)

    service.get_usage_stats()
    clock.advance(30)

    assert service.get_usage_stats() is second


def test_stale_cache_on_error(clock):
    stats = real_stats()
    service = ScriptedService([stats, UsageSourceError('offline')], clock)

    service.get_usage_stats()
    clock.advance(31)

    assert service.get_usage_stats() is stats
    assert service.last_error == 'offline'


def test_mock_when_nothing_cached(clock):
    service = ScriptedService([UsageSourceError('offline')], clock)
    stats = service.get_usage_stats()

    assert stats.is_mock
    assert stats.tokens_used == 25_000
    assert service.cached_stats is None


def test_invalidate_forces_fetch(clock):
    first, second = real_stats(1), real_stats(2)
    service = ScriptedService([first, second], clock)

    service.get_usage_stats()
    service.invalidate()

    assert service.get_usage_stats() is second


def test_update_configuration_drops_cache(clock):
    service = ScriptedService([real_stats()], clock)
    service.get_usage_stats()
    service.update_configuration(reset_hour=6, timezone='UTC', custom_token_limit=5_000)

    assert service.cached_stats is None
    assert service.reset_hour == 6
    assert service.custom_token_limit == 5_000


def test_menu_bar_data_without_session_window(clock):
    service = ScriptedService([], clock)
    service.update_configuration(menu_bar_cost_source='sessionWindow')
    stats = real_stats()
    stats.today.total_cost = 4.2

    assert service.menu_bar_data(stats).cost == 4.2


def test_omitted_options_keep_their_values(clock):
    service = ScriptedService([], clock)
    service.update_configuration(plan='Custom', custom_token_limit=5_000)
    service.update_configuration(menu_bar_cost_source='sessionWindow')

    assert service.plan == 'Custom'
    assert service.custom_token_limit == 5_000

    service.update_configuration(custom_token_limit=None)
    assert service.custom_token_limit is None
