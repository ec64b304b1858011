"""Tests for the tray application's update and settings flow.

pystray needs a desktop session, so it is replaced by a mock here.
"""

from __future__ import annotations

import importlib
import sys
import threading
from unittest.mock import MagicMock

import pytest
from conftest import make_reset_info

from usage_meter.i18n import T
from usage_meter.mock import mock_stats
from usage_meter.models import UsageStats
from usage_meter.service import UsageService
from usage_meter.settings import SettingsService


class StaticService(UsageService):
    def __init__(self, name: str, tokens_used: int, token_limit: int = 10_000) -> None:
        super().__init__()
        self.name = name
        self.tokens_used = tokens_used
        self.token_limit = token_limit
        self.fetches = 0

    def fetch_stats(self) -> UsageStats:
        self.fetches += 1
        stats = mock_stats(make_reset_info(24))
        stats.is_mock = False
        stats.tokens_used = self.tokens_used
        stats.token_limit = self.token_limit
        stats.percentage_used = self.tokens_used / self.token_limit * 100
        return stats


class BrokenService(UsageService):
    name = 'broken'

    def fetch_stats(self) -> UsageStats:
        raise RuntimeError('bug')


@pytest.fixture
def tray(monkeypatch):
    monkeypatch.setitem(sys.modules, 'pystray', MagicMock())
    monkeypatch.delitem(sys.modules, 'usage_meter.tray', raising=False)
    return importlib.import_module('usage_meter.tray')


@pytest.fixture
def services():
    return {'local': StaticService('local', 2_000), 'zai': StaticService('zai', 9_500)}


@pytest.fixture
def app(tray, tmp_path, services):
    return tray.UsageMeterApp(SettingsService(tmp_path / 'settings.json'), services)


def test_update_sets_tooltip(app):
    app.update()

    assert app.menu_data.percentage_used == 20.0
    assert app.menu_data.status == 'safe'
    assert app.icon.title.startswith(T['title'])
    app.icon.notify.assert_not_called()


def test_switching_source(app, services):
    app.apply_settings(data_source='zai')

    assert app.service is services['zai']
    assert app.settings_service.load().data_source == 'zai'
    assert app.menu_data.status == 'critical'
    app.icon.notify.assert_called_once_with(T['notify_critical'].format(pct=95), T['title'])


def test_settings_reach_all_sources(app, services):
    app.apply_settings(reset_hour=5, warning_threshold=10, critical_threshold=15)

    for service in services.values():
        assert service.reset_hour == 5
        assert service.warning_threshold == 10
    assert app.menu_data.status == 'critical'


def test_refresh_bypasses_cache(app, services):
    app.update()
    app.update()
    assert services['local'].fetches == 1

    app.refresh_now()
    assert services['local'].fetches == 2


def test_unexpected_error_shows_status(tray, tmp_path):
    app = tray.UsageMeterApp(SettingsService(tmp_path / 'settings.json'), {'local': BrokenService()})
    app.update()

    assert app.menu_data is None
    assert app.icon.title.startswith(T['error_label'])


def test_quit(app):
    app.on_quit()

    assert not app.running
    app.icon.stop.assert_called_once()


def test_menu_option_fetches_off_the_menu_thread(tray, app, services, monkeypatch):
    threads = MagicMock()
    monkeypatch.setattr(tray, 'threading', threads)

    app._radio_item('z.ai', 'data_source', 'zai')
    action = tray.pystray.MenuItem.call_args.args[1]
    action(None, None)

    threads.Thread.assert_called_once_with(target=app._set_option, args=('data_source', 'zai'), daemon=True)
    threads.Thread.return_value.start.assert_called_once()
    assert services['zai'].fetches == 0


def test_update_display_waits_for_running_update(app):
    app.update()
    app.icon.title = 'stale'

    with app._lock:
        worker = threading.Thread(target=app.update_display, daemon=True)
        worker.start()
        worker.join(0.2)
        assert worker.is_alive()
        assert app.icon.title == 'stale'

    worker.join(5)
    assert not worker.is_alive()
    assert app.icon.title.startswith(T['title'])
