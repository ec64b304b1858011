"""Threshold and reset notifications for the tray icon."""
from __future__ import annotations

import logging
from typing import Callable

from .i18n import T
from .models import MenuBarData, Status

logger = logging.getLogger(__name__)

RESET_ARM_PERCENT = 95  # A drop after exceeding this counts as a quota reset

SEVERITY: dict[Status, int] = {'safe': 0, 'warning': 1, 'critical': 2}


class NotificationService:
    """Decide when to notify; delivery is delegated to *notify(message, title)*.

    Each escalation (safe → warning → critical) is announced once and
    re-armed when usage drops back below it.
    """

    def __init__(self, notify: Callable[[str, str], None]) -> None:
        self._notify = notify
        self._last_status: Status = 'safe'
        self._prev_pct: float | None = None

    def check_and_notify(self, data: MenuBarData) -> str | None:
        """Send at most one notification for *data*; return its message, if any."""
        message = None
        pct = data.percentage_used

        if SEVERITY[data.status] > SEVERITY[self._last_status]:
            key = 'notify_critical' if data.status == 'critical' else 'notify_warning'
            message = T[key].format(pct=pct)
        elif self._prev_pct is not None and self._prev_pct > RESET_ARM_PERCENT and pct < self._prev_pct:
            message = T['notify_reset']

        self._last_status = data.status
        self._prev_pct = pct

        if message:
            logger.info('Notification: %s', message)
            self._notify(message, T['title'])

        return message
