"""User preferences stored as a flat JSON file."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from . import config

logger = logging.getLogger(__name__)

PlanSetting = Literal['auto', 'Pro', 'Max5', 'Max20', 'Custom']
DisplayMode = Literal['percentage', 'cost', 'alternate']
CostSource = Literal['today', 'sessionWindow']
DataSource = Literal['local', 'zai']

PLANS: tuple[str, ...] = get_args(PlanSetting)
DISPLAY_MODES: tuple[str, ...] = get_args(DisplayMode)
COST_SOURCES: tuple[str, ...] = get_args(CostSource)
DATA_SOURCES: tuple[str, ...] = get_args(DataSource)
THRESHOLD_FIELDS = frozenset({'warning_threshold', 'critical_threshold'})


class AppSettings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    timezone: str = ''  # IANA name, '' = system local time
    reset_hour: int = Field(0, ge=0, le=23)
    plan: PlanSetting = 'auto'
    custom_token_limit: int | None = Field(None, gt=0)
    menu_bar_display_mode: DisplayMode = 'alternate'
    menu_bar_cost_source: CostSource = 'today'
    data_source: DataSource = 'local'
    warning_threshold: float = Field(70, gt=0, le=100)
    critical_threshold: float = Field(90, gt=0, le=100)

    @model_validator(mode='after')
    def _check_thresholds(self) -> AppSettings:
        if self.warning_threshold >= self.critical_threshold:
            raise ValueError('warning_threshold must be below critical_threshold')
        return self


FIELDS = frozenset(AppSettings.model_fields)


class SettingsService:
    """Load and save :class:`AppSettings` at ``<app home>/settings.json``."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or config.app_home() / 'settings.json'

    def defaults(self) -> AppSettings:
        return AppSettings()

    def load(self) -> AppSettings:
        """Return the stored settings merged over the defaults.

        Unknown keys are dropped and fields that fail validation fall back to
        their defaults. A missing or unreadable file yields the defaults.
        """
        if not self.path.exists():
            return self.defaults()

        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error('Error loading settings from %s: %s', self.path, e)
            return self.defaults()

        if not isinstance(data, dict):
            logger.error('Ignoring settings file %s: not a JSON object', self.path)
            return self.defaults()

        for key in data.keys() - FIELDS:
            logger.debug('Ignoring unknown setting %r', key)

        # Field errors first; the cross-field threshold rule only runs once every field is valid
        for _ in range(2):
            try:
                return AppSettings.model_validate(data)
            except ValidationError as e:
                failed = {err['loc'][0] for err in e.errors() if err['loc']} or THRESHOLD_FIELDS
                for key in sorted(failed, key=str):
                    logger.warning('Ignoring invalid setting %r in %s', key, self.path)
                data = {k: v for k, v in data.items() if k not in failed}

        return AppSettings.model_validate({k: v for k, v in data.items() if k not in THRESHOLD_FIELDS})

    def save(self, **changes: Any) -> AppSettings:
        """Merge *changes* into the stored settings and write them back.

        Raises
        ------
        ValueError
            If a key is unknown or the merged settings are invalid
            (``pydantic.ValidationError`` is a ``ValueError``).
        OSError
            If the file cannot be written.
        """
        unknown = set(changes) - FIELDS
        if unknown:
            raise ValueError(f'Unknown settings: {", ".join(sorted(unknown))}')

        settings = AppSettings.model_validate({**self.load().model_dump(), **changes})

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(settings.model_dump_json(indent=2), encoding='utf-8')
        logger.info('Settings saved to %s', self.path)
        return settings
