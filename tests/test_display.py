"""Tests for tray title and tooltip text."""

from __future__ import annotations

from usage_meter.display import format_currency, format_number, format_title, format_tooltip, shows_cost
from usage_meter.i18n import T
from usage_meter.models import MenuBarData

DATA = MenuBarData(
    tokens_used=1_500_000, token_limit=4_000_000, percentage_used=37.5, status='safe', cost=12.5,
    time_until_reset='2h 5m left',
)


def test_format_number():
    assert format_number(1_500_000) == '1.5M'
    assert format_number(2_500) == '2.5K'
    assert format_number(999) == '999'
    assert format_number(0) == '0'


def test_format_currency():
    assert format_currency(1234.5) == '$1,234.50'
    assert format_currency(0) == '$0.00'


class TestTitle:
    def test_percentage(self):
        assert format_title(DATA, 'percentage') == '38%'

    def test_cost(self):
        assert format_title(DATA, 'cost') == '$12.50'

    def test_alternate(self):
        assert format_title(DATA, 'alternate', show_percentage=True) == '38%'
        assert format_title(DATA, 'alternate', show_percentage=False) == '$12.50'

    def test_no_data(self):
        assert format_title(None, 'cost') == '--'

    def test_shows_cost(self):
        assert shows_cost('cost', True)
        assert not shows_cost('percentage', False)
        assert not shows_cost('alternate', True)


class TestTooltip:
    def test_usage_lines(self):
        text = format_tooltip(DATA)
        lines = text.split('\n')

        assert lines[0] == T['title']
        assert lines[1] == T['tooltip_usage'].format(pct=37.5, used='1.5M', limit='4.0M')
        assert lines[2] == '2h 5m left'

    def test_sample_data_marker(self):
        assert format_tooltip(DATA, is_mock=True).endswith(T['sample_data'])

    def test_stale_data_marker(self):
        assert format_tooltip(DATA, error='Rate limit exceeded').endswith(T['stale_data'])

    def test_error_without_data(self):
        text = format_tooltip(None, error='x' * 200)
        assert text.startswith(T['error_label'])
        assert text.count('x') == 80

    def test_length_limit(self):
        assert len(format_tooltip(DATA, error='boom', is_mock=True)) <= 127
