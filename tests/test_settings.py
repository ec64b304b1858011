"""Tests for loading and saving user settings."""

from __future__ import annotations

import json

import pytest

from usage_meter.settings import AppSettings, SettingsService


@pytest.fixture
def service(tmp_path) -> SettingsService:
    return SettingsService(tmp_path / 'home' / 'settings.json')


class TestLoad:
    def test_missing_file_gives_defaults(self, service):
        assert service.load() == AppSettings()

    def test_round_trip(self, service):
        service.save(plan='Max5', reset_hour=6, timezone='Europe/Berlin', custom_token_limit=50_000)
        loaded = service.load()

        assert loaded.plan == 'Max5'
        assert loaded.reset_hour == 6
        assert loaded.timezone == 'Europe/Berlin'
        assert loaded.custom_token_limit == 50_000
        assert loaded.data_source == 'local'

    def test_corrupt_file_gives_defaults(self, service):
        service.path.parent.mkdir(parents=True)
        service.path.write_text('{"plan": ', encoding='utf-8')
        assert service.load() == AppSettings()

    def test_non_object_gives_defaults(self, service):
        service.path.parent.mkdir(parents=True)
        service.path.write_text('["Pro"]', encoding='utf-8')
        assert service.load() == AppSettings()

    def test_invalid_fields_fall_back_individually(self, service):
        service.path.parent.mkdir(parents=True)
        service.path.write_text(json.dumps({
            'plan': 'Gold',
            'reset_hour': 5,
            'menu_bar_display_mode': 'cost',
            'theme': 'dark',
        }), encoding='utf-8')

        loaded = service.load()

        assert loaded.plan == 'auto'
        assert loaded.reset_hour == 5
        assert loaded.menu_bar_display_mode == 'cost'

    def test_thresholds_validated_together(self, service):
        service.path.parent.mkdir(parents=True)
        service.path.write_text(json.dumps({'warning_threshold': 95, 'critical_threshold': 99}), encoding='utf-8')

        loaded = service.load()

        assert (loaded.warning_threshold, loaded.critical_threshold) == (95, 99)


class TestSave:
    def test_writes_all_fields(self, service):
        service.save(data_source='zai')
        stored = json.loads(service.path.read_text(encoding='utf-8'))

        assert stored['data_source'] == 'zai'
        assert set(stored) == set(AppSettings().model_dump())

    def test_merges_with_stored_values(self, service):
        service.save(plan='Pro')
        service.save(menu_bar_cost_source='sessionWindow')
        loaded = service.load()

        assert loaded.plan == 'Pro'
        assert loaded.menu_bar_cost_source == 'sessionWindow'

    def test_unknown_key(self, service):
        with pytest.raises(ValueError, match='Unknown settings'):
            service.save(colour='red')

    @pytest.mark.parametrize('changes', [
        {'reset_hour': 24},
        {'plan': 'Enterprise'},
        {'custom_token_limit': 0},
        {'data_source': 'ccusage'},
        {'warning_threshold': 90, 'critical_threshold': 80},
        {'critical_threshold': 150},
    ])
    def test_rejects_invalid_values(self, service, changes):
        with pytest.raises(ValueError):
            service.save(**changes)
        assert not service.path.exists()


class TestLoadFallbacks:
    def write(self, service, data):
        service.path.parent.mkdir(parents=True)
        service.path.write_text(json.dumps(data), encoding='utf-8')

    def test_out_of_range_threshold_keeps_the_other(self, service):
        self.write(service, {'warning_threshold': 150, 'critical_threshold': 95, 'reset_hour': 3})
        loaded = service.load()

        assert loaded.warning_threshold == 70
        assert loaded.critical_threshold == 95
        assert loaded.reset_hour == 3

    def test_conflicting_thresholds_fall_back_together(self, service):
        self.write(service, {'warning_threshold': 95, 'plan': 'Max20'})
        loaded = service.load()

        assert (loaded.warning_threshold, loaded.critical_threshold) == (70, 90)
        assert loaded.plan == 'Max20'

    def test_wrong_types(self, service):
        self.write(service, {'reset_hour': 'noon', 'custom_token_limit': -5, 'timezone': 'UTC'})
        loaded = service.load()

        assert loaded.reset_hour == 0
        assert loaded.custom_token_limit is None
        assert loaded.timezone == 'UTC'

    def test_invalid_utf8_gives_defaults(self, service):
        service.path.parent.mkdir(parents=True)
        service.path.write_bytes(b'{"plan": "\xff"}')
        assert service.load() == AppSettings()
