"""Usage stats parsed from Claude Code's local JSONL session logs.

Claude Code appends one JSON object per line to
``<config dir>/projects/<project>/<session>.jsonl``. Assistant entries carry
``message.usage`` with the token counts of one API response; the same
response can be logged more than once, so entries are deduplicated by
message id and request id.
"""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

from . import config
from .models import DailyUsage, ModelUsage, Plan, SessionWindow, UsageStats
from .service import UsageService, UsageSourceError, utcnow
from .stats import (
    PLAN_LIMITS, actual_reset_info, calculate_prediction, calculate_velocity, filter_recent, find_today, hour_floor,
    tokens_remaining, usage_percentage,
)

logger = logging.getLogger(__name__)

SESSION_DURATION = timedelta(hours=config.SESSION_HOURS)

# USD per million tokens: input, output, cache write, cache read
MODEL_PRICING: dict[str, tuple[float, float, float, float]] = {
    'opus': (15.0, 75.0, 18.75, 1.50),
    'sonnet': (3.0, 15.0, 3.75, 0.30),
    'haiku': (0.80, 4.0, 1.0, 0.08),
}


class LogsNotFoundError(UsageSourceError):
    pass


@dataclass
class UsageEntry:
    """Token counts of a single assistant response."""

    timestamp: datetime
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    cost: float = 0.0

    @property
    def limit_tokens(self) -> int:
        """Tokens that count against the plan limit."""
        return self.input_tokens + self.output_tokens

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.cache_creation_tokens + self.cache_read_tokens


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def estimate_cost(model: str, input_tokens: int, output_tokens: int, cache_creation: int, cache_read: int) -> float:
    """Estimate the USD cost of one response from :data:`MODEL_PRICING`; unknown models cost 0."""
    name = model.lower()
    for family, prices in MODEL_PRICING.items():
        if family in name:
            counts = (input_tokens, output_tokens, cache_creation, cache_read)
            return sum(c * p for c, p in zip(counts, prices)) / 1_000_000
    return 0.0


def _int(value: Any) -> int:
    return int(value) if isinstance(value, (int, float)) else 0


def parse_entry(raw: dict[str, Any]) -> UsageEntry | None:
    """Turn one log line into a :class:`UsageEntry`, or None if it carries no usage."""
    message = raw.get('message')
    if not isinstance(message, dict) or not isinstance(message.get('usage'), dict):
        return None

    timestamp = parse_timestamp(raw.get('timestamp'))
    if timestamp is None:
        return None

    model = message.get('model') or 'unknown'
    if model == '<synthetic>':
        return None

    usage = message['usage']
    entry = UsageEntry(
        timestamp=timestamp,
        model=model,
        input_tokens=_int(usage.get('input_tokens')),
        output_tokens=_int(usage.get('output_tokens')),
        cache_creation_tokens=_int(usage.get('cache_creation_input_tokens')),
        cache_read_tokens=_int(usage.get('cache_read_input_tokens')),
    )

    cost = raw.get('costUSD')
    if isinstance(cost, (int, float)):
        entry.cost = float(cost)
    else:
        entry.cost = estimate_cost(
            model, entry.input_tokens, entry.output_tokens, entry.cache_creation_tokens, entry.cache_read_tokens,
        )

    return entry


def iter_log_files(project_dirs: Iterable[Path], since: datetime) -> Iterator[Path]:
    """Yield ``*.jsonl`` files modified after *since*."""
    cutoff = since.timestamp()
    for projects in project_dirs:
        if not projects.is_dir():
            continue
        for path in projects.rglob('*.jsonl'):
            try:
                if path.stat().st_mtime >= cutoff:
                    yield path
            except OSError:
                continue


def read_entries(path: Path) -> Iterator[tuple[str | None, UsageEntry]]:
    """Yield ``(dedup key, entry)`` pairs from one log file, skipping malformed lines."""
    try:
        with open(path, encoding='utf-8', errors='replace') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    raw = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if not isinstance(raw, dict):
                    continue

                entry = parse_entry(raw)
                if entry is None:
                    continue

                message_id = raw['message'].get('id')
                request_id = raw.get('requestId')
                key = f'{message_id}:{request_id}' if message_id and request_id else None
                yield key, entry
    except OSError as e:
        logger.debug('Could not read %s: %s', path, e)


def load_entries(project_dirs: Iterable[Path], now: datetime, days: int = config.LOG_RETENTION_DAYS) -> list[UsageEntry]:
    """Collect deduplicated entries of the last *days* days, oldest first."""
    since = now - timedelta(days=days)
    seen: set[str] = set()
    entries: list[UsageEntry] = []

    for path in iter_log_files(project_dirs, since):
        for key, entry in read_entries(path):
            if entry.timestamp < since:
                continue
            if key is not None:
                if key in seen:
                    continue
                seen.add(key)
            entries.append(entry)

    entries.sort(key=lambda e: e.timestamp)
    return entries


def build_session_windows(entries: Iterable[UsageEntry], now: datetime) -> list[SessionWindow]:
    """Group time-ordered entries into 5-hour blocks.

    A block starts at the full hour of its first entry; the first entry at or
    after the block end opens a new block. The last block is active while
    *now* is before its end.
    """
    windows: list[SessionWindow] = []
    current: SessionWindow | None = None

    for entry in entries:
        if current is None or entry.timestamp >= current.end_time:
            start = hour_floor(entry.timestamp)
            current = SessionWindow(start_time=start, end_time=start + SESSION_DURATION)
            windows.append(current)

        current.total_tokens += entry.limit_tokens
        current.total_cost += entry.cost
        if entry.model not in current.models:
            current.models.append(entry.model)

    if current is not None and now < current.end_time:
        current.is_active = True

    return windows


def build_daily_usage(entries: Iterable[UsageEntry]) -> list[DailyUsage]:
    """Aggregate entries per local calendar day, with a per-model breakdown."""
    days: dict[str, DailyUsage] = {}
    for entry in entries:
        key = entry.timestamp.astimezone().date().isoformat()
        day = days.setdefault(key, DailyUsage(date=key))
        day.total_tokens += entry.total_tokens
        day.total_cost += entry.cost

        model = day.models.setdefault(entry.model, ModelUsage())
        model.tokens += entry.total_tokens
        model.cost += entry.cost

    return sorted(days.values(), key=lambda d: d.date)


def build_hourly(entries: Iterable[UsageEntry]) -> dict[datetime, int]:
    hourly: dict[datetime, int] = {}
    for entry in entries:
        bucket = hour_floor(entry.timestamp)
        hourly[bucket] = hourly.get(bucket, 0) + entry.limit_tokens
    return hourly


def resolve_token_limit(plan: str, custom_limit: int | None, windows: Iterable[SessionWindow]) -> tuple[int, Plan]:
    """Return ``(token limit, plan name)`` for the configured plan.

    ``auto`` picks the smallest plan whose limit covers the busiest
    historical session window.
    """
    if plan in PLAN_LIMITS:
        return PLAN_LIMITS[plan], plan  # type: ignore[return-value]  # keys are Plan literals

    busiest = max((w.total_tokens for w in windows), default=0)
    if plan == 'Custom':
        return custom_limit or busiest or PLAN_LIMITS['Pro'], 'Custom'

    for name in ('Pro', 'Max5', 'Max20'):
        if busiest <= PLAN_LIMITS[name]:
            return PLAN_LIMITS[name], name  # type: ignore[return-value]
    return busiest, 'Custom'


class LocalLogService(UsageService):
    """Usage stats from Claude Code logs on this machine."""

    name = 'local'

    def __init__(self, project_dirs: list[Path] | None = None, clock: Callable[[], float] | None = None) -> None:
        super().__init__(clock or time.monotonic)
        self.project_dirs = project_dirs

    def fetch_stats(self) -> UsageStats:
        dirs = self.project_dirs if self.project_dirs is not None else config.claude_project_dirs()
        if not any(d.is_dir() for d in dirs):
            raise LogsNotFoundError(f"No Claude Code logs found in {', '.join(str(d) for d in dirs)}")

        now = utcnow()
        return self.build_stats(load_entries(dirs, now), now)

    def build_stats(self, entries: list[UsageEntry], now: datetime) -> UsageStats:
        """Compute :class:`UsageStats` from time-ordered entries."""
        windows = build_session_windows(entries, now)
        active = windows[-1] if windows and windows[-1].is_active else None

        token_limit, plan = resolve_token_limit(self.plan, self.custom_token_limit, windows)
        tokens_used = active.total_tokens if active else 0

        velocity = calculate_velocity(build_hourly(entries), now)
        reset_info = self.reset_info(now)
        daily = build_daily_usage(entries)
        today = now.astimezone().date()

        return UsageStats(
            today=find_today(daily, today),
            this_week=filter_recent(daily, 7, today),
            this_month=filter_recent(daily, 30, today),
            burn_rate=velocity.current,
            velocity=velocity,
            prediction=calculate_prediction(tokens_used, token_limit, velocity, reset_info, now),
            reset_info=reset_info,
            actual_reset_info=actual_reset_info(active.end_time, now) if active else None,
            current_plan=plan,
            token_limit=token_limit,
            tokens_used=tokens_used,
            tokens_remaining=tokens_remaining(tokens_used, token_limit),
            percentage_used=usage_percentage(tokens_used, token_limit),
            session_window=active,
        )
