"""Shared test fixtures."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from usage_meter.models import ResetTimeInfo


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_response(status: int = 200, body: Any = None) -> MagicMock:
    """Build a stand-in for ``requests.Response``."""
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.json.return_value = body
    return resp


def make_reset_info(hours_until_reset: float, now: datetime | None = None) -> ResetTimeInfo:
    now = now or datetime.now(timezone.utc)
    return ResetTimeInfo(
        next_reset_time=now + timedelta(hours=hours_until_reset),
        time_until_reset=timedelta(hours=hours_until_reset),
        reset_hour=0,
        timezone='UTC',
        percent_until_reset=50.0,
        days_in_cycle=30,
        days_since_reset=15,
    )


def log_line(
    timestamp: datetime, model: str = 'claude-sonnet-4-20250514', input_tokens: int = 100, output_tokens: int = 50,
    message_id: str | None = None, request_id: str | None = None, **extra: Any,
) -> str:
    """Return one Claude Code assistant log line as JSON."""
    entry: dict[str, Any] = {
        'type': 'assistant',
        'timestamp': timestamp.isoformat().replace('+00:00', 'Z'),
        'message': {
            'id': message_id,
            'model': model,
            'role': 'assistant',
            'usage': {'input_tokens': input_tokens, 'output_tokens': output_tokens, **extra.pop('usage', {})},
        },
        'requestId': request_id,
        **extra,
    }
    return json.dumps(entry)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def now() -> datetime:
    """A fixed reference time in the middle of an hour."""
    return datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    path = tmp_path / 'claude' / 'projects' / 'my-project'
    path.mkdir(parents=True)
    return path.parent


@pytest.fixture
def quota_body() -> dict[str, Any]:
    reset_at = datetime.now(timezone.utc) + timedelta(hours=2, seconds=30)
    return {
        'code': 200,
        'msg': 'Operation successful',
        'success': True,
        'data': {
            'limits': [
                {'type': 'TIME_LIMIT', 'unit': 5, 'number': 1, 'usage': 100, 'currentValue': 3,
                 'remaining': 97, 'percentage': 3},
                {'type': 'TOKENS_LIMIT', 'unit': 3, 'number': 5, 'usage': 40_000_000, 'currentValue': 10_000_000,
                 'remaining': 30_000_000, 'percentage': 25, 'nextResetTime': int(reset_at.timestamp())},
            ],
        },
    }


@pytest.fixture
def model_usage_body() -> dict[str, Any]:
    return {
        'code': 200,
        'success': True,
        'data': {
            'x_time': ['2026-03-14 10:00:00', '2026-03-15 10:00:00', '2026-03-15 11:00:00'],
            'tokensUsage': [1000, 2000, 3000],
            'totalUsage': {'totalModelCallCount': 12, 'totalTokensUsage': 6000},
        },
    }
