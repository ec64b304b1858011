"""
z.ai quota API client
=====================

Reads the token quota and the hourly model usage of the account behind
``ANTHROPIC_AUTH_TOKEN`` and maps them to :class:`UsageStats`.

Endpoints::

    GET /api/monitor/usage/quota/limit
    GET /api/monitor/usage/model-usage?startTime=...&endTime=...
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import requests

from . import config
from .models import UsageStats
from .service import UsageService, UsageSourceError, utcnow
from .stats import (
    actual_reset_info, calculate_prediction, calculate_velocity, daily_from_hourly, detect_plan, filter_recent,
    find_today, hour_floor, usage_percentage,
)

logger = logging.getLogger(__name__)

TIME_FORMATS = ('%Y-%m-%d %H:%M:%S', '%Y-%m-%d %H:%M', '%Y-%m-%d %H')


class ZaiError(UsageSourceError):
    pass


class MissingApiKeyError(ZaiError):
    pass


class AuthenticationError(ZaiError):
    pass


class RateLimitError(ZaiError):
    pass


class InvalidResponseError(ZaiError):
    pass


class ApiError(ZaiError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def format_datetime(dt: datetime) -> str:
    """Format *dt* the way the API expects: ``YYYY-MM-DD HH:MM:SS``."""
    return dt.strftime('%Y-%m-%d %H:%M:%S')


def parse_api_time(value: str) -> datetime | None:
    """Parse an ``x_time`` label as local time; return None when unparsable."""
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).astimezone()
        except ValueError:
            continue
    return None


def parse_reset_timestamp(value: Any) -> datetime | None:
    """Convert ``nextResetTime`` (epoch seconds or milliseconds) to an aware datetime."""
    if not isinstance(value, (int, float)) or value <= 0:
        return None
    if value > 1e12:
        value = value / 1000
    try:
        return datetime.fromtimestamp(value, timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def hourly_from_model_usage(data: dict[str, Any]) -> dict[datetime, int]:
    """Extract tokens per hour from a model-usage ``data`` object.

    Uses the ``tokensUsage`` series when it is aligned with ``x_time``;
    otherwise the reported total is spread evenly over the time labels.
    """
    labels = data.get('x_time') or []
    times = [parse_api_time(label) for label in labels if isinstance(label, str)]

    series = data.get('tokensUsage')
    if isinstance(series, list) and len(series) == len(times):
        values = [int(v or 0) for v in series]
    else:
        total = int((data.get('totalUsage') or {}).get('totalTokensUsage') or 0)
        valid = sum(1 for t in times if t is not None)
        share = total // valid if valid else 0
        values = [share] * len(times)

    hourly: dict[datetime, int] = {}
    for when, tokens in zip(times, values):
        if when is None:
            continue
        bucket = hour_floor(when)
        hourly[bucket] = hourly.get(bucket, 0) + tokens

    return hourly


class ZaiService(UsageService):
    """Usage stats from the z.ai monitoring API."""

    name = 'zai'

    def __init__(
        self, api_key: str | None = None, base_url: str | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        super().__init__(clock or time.monotonic)
        self.api_key = config.zai_api_key() if api_key is None else api_key
        self.base_url = (base_url or config.ZAI_BASE_URL).rstrip('/')
        if not self.api_key:
            logger.warning('ANTHROPIC_AUTH_TOKEN not found in environment, z.ai source will use mock data')

    def _headers(self) -> dict[str, str]:
        return {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
            'User-Agent': config.USER_AGENT,
        }

    def _get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        """GET *path* and return the decoded body, mapping failures to :class:`ZaiError`."""
        try:
            resp = requests.get(
                f'{self.base_url}{path}', headers=self._headers(), params=params, timeout=config.REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise ApiError(f'Connection error: {e}') from e

        if resp.status_code in (401, 403):
            raise AuthenticationError('Authentication failed - check API key')
        if resp.status_code == 429:
            raise RateLimitError('Rate limit exceeded')
        if not resp.ok:
            raise ApiError(f'API request failed with status {resp.status_code}', resp.status_code)

        try:
            body = resp.json()
        except ValueError as e:
            raise InvalidResponseError(f'Invalid JSON from {path}') from e
        if not isinstance(body, dict):
            raise InvalidResponseError(f'Invalid response from {path}')

        return body

    def fetch_quota_limit(self) -> dict[str, Any]:
        """Return the ``TOKENS_LIMIT`` entry of the quota endpoint."""
        body = self._get(config.ZAI_QUOTA_PATH)
        limits = (body.get('data') or {}).get('limits')
        if not body.get('success') or not isinstance(limits, list):
            raise InvalidResponseError('Invalid response from quota endpoint')

        for limit in limits:
            if isinstance(limit, dict) and limit.get('type') == 'TOKENS_LIMIT':
                return limit

        raise InvalidResponseError('TOKENS_LIMIT not found in quota response')

    def fetch_model_usage(self, start: datetime | None = None, end: datetime | None = None) -> dict[str, Any]:
        """Return the model-usage ``data`` object; defaults to the last 7 days."""
        end = end or datetime.now()
        start = start or end - timedelta(days=7)
        body = self._get(config.ZAI_MODEL_USAGE_PATH, {
            'startTime': format_datetime(start),
            'endTime': format_datetime(end),
        })

        data = body.get('data')
        if not body.get('success') or not isinstance(data, dict):
            raise InvalidResponseError('Invalid response from model usage endpoint')

        return data

    def fetch_stats(self) -> UsageStats:
        if not self.api_key:
            raise MissingApiKeyError('No API key configured')

        quota = self.fetch_quota_limit()
        model_usage = self.fetch_model_usage()
        return self.map_stats(quota, model_usage)

    def map_stats(self, quota: dict[str, Any], model_usage: dict[str, Any], now: datetime | None = None) -> UsageStats:
        """Map the two API payloads to :class:`UsageStats`."""
        now = now or utcnow()
        try:
            tokens_used = int(quota.get('currentValue') or 0)
            token_limit = int(quota['usage'])
            remaining = quota.get('remaining')
            tokens_remaining = int(remaining) if remaining is not None else max(0, token_limit - tokens_used)
            percentage = quota.get('percentage')
            percentage_used = float(percentage) if percentage is not None else usage_percentage(tokens_used, token_limit)
            hourly = hourly_from_model_usage(model_usage)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise InvalidResponseError(f'Malformed usage figures: {e}') from e

        velocity = calculate_velocity(hourly, now)
        reset_info = self.reset_info(now)
        prediction = calculate_prediction(tokens_used, token_limit, velocity, reset_info, now)

        next_reset = parse_reset_timestamp(quota.get('nextResetTime'))
        daily = daily_from_hourly(hourly)
        today = now.astimezone().date()

        return UsageStats(
            today=find_today(daily, today),
            this_week=filter_recent(daily, 7, today),
            this_month=filter_recent(daily, 30, today),
            burn_rate=velocity.current,
            velocity=velocity,
            prediction=prediction,
            reset_info=reset_info,
            actual_reset_info=actual_reset_info(next_reset, now) if next_reset else None,
            current_plan=detect_plan(token_limit),
            token_limit=token_limit,
            tokens_used=tokens_used,
            tokens_remaining=tokens_remaining,
            percentage_used=percentage_used,
        )
