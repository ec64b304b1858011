"""Application-wide constants and environment overrides."""
from __future__ import annotations

import os
from pathlib import Path

# ── Polling ────────────────────────────────────────────────────
POLL_INTERVAL = 30  # Seconds between updates
POLL_INITIAL_DELAY = 1  # Seconds before the first update
DISPLAY_TOGGLE_INTERVAL = 3  # Seconds between percentage/cost in 'alternate' mode
CACHE_DURATION = 30  # Seconds a fetched result stays fresh
REQUEST_TIMEOUT = 10

# ── z.ai API ───────────────────────────────────────────────────
ZAI_BASE_URL = os.environ.get('ZAI_BASE_URL', 'https://api.z.ai').rstrip('/')
ZAI_QUOTA_PATH = '/api/monitor/usage/quota/limit'
ZAI_MODEL_USAGE_PATH = '/api/monitor/usage/model-usage'
ZAI_DEFAULT_LIMIT = 40_000_000
USER_AGENT = 'usage-meter/1.0'


def zai_api_key() -> str:
    """Return the z.ai API key from the environment, or an empty string."""
    return os.environ.get('ANTHROPIC_AUTH_TOKEN', '')


# ── Local Claude Code logs ─────────────────────────────────────
LOG_RETENTION_DAYS = 30
SESSION_HOURS = 5


def claude_project_dirs() -> list[Path]:
    """Return the ``projects`` directories that may hold Claude Code logs.

    ``CLAUDE_CONFIG_DIR`` may list several comma-separated roots; without it
    both ``~/.config/claude`` and ``~/.claude`` are searched.
    """
    env = os.environ.get('CLAUDE_CONFIG_DIR', '').strip()
    if env:
        roots = [Path(p.strip()).expanduser() for p in env.split(',') if p.strip()]
    else:
        roots = [Path.home() / '.config' / 'claude', Path.home() / '.claude']

    return [root / 'projects' for root in roots]


# ── Settings / logs ────────────────────────────────────────────
def app_home() -> Path:
    """Return the directory holding ``settings.json`` and the log file."""
    env = os.environ.get('USAGE_METER_HOME', '').strip()
    return Path(env).expanduser() if env else Path.home() / '.usage-meter'


SCREENSHOT_DIR = Path.home() / 'Pictures' / 'UsageMeter-Screenshots'

# ── Theme ──────────────────────────────────────────────────────
BG = '#1e1e1e'
FG = '#cccccc'
FG_DIM = '#888888'
FG_HEADING = '#ffffff'
BAR_BG = '#333333'
BAR_FG = '#4a9eff'
BAR_FG_WARN = '#e0a030'
BAR_FG_HIGH = '#e05050'
