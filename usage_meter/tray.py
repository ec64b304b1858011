"""System tray application: polling loop, icon, menu and popup windows."""
from __future__ import annotations

import logging
import threading
import time
import traceback
from typing import Any

import pystray  # type: ignore[import-untyped]  # no type stubs available

from . import config
from .display import format_title, format_tooltip, shows_cost
from .i18n import T
from .icon import create_icon_image, create_status_image
from .local import LocalLogService
from .models import MenuBarData, UsageStats
from .notifications import NotificationService
from .service import UsageService
from .settings import COST_SOURCES, DATA_SOURCES, DISPLAY_MODES, AppSettings, SettingsService
from .zai import ZaiService

logger = logging.getLogger(__name__)


def create_services() -> dict[str, UsageService]:
    return {'local': LocalLogService(), 'zai': ZaiService()}


class UsageMeterApp:
    """System tray application displaying token usage."""

    def __init__(
        self, settings_service: SettingsService | None = None, services: dict[str, UsageService] | None = None,
    ) -> None:
        """Load settings, configure the data sources and set up the tray icon."""
        self.settings_service = settings_service or SettingsService()
        self.settings: AppSettings = self.settings_service.load()
        self.services = services or create_services()
        for service in self.services.values():
            self._configure(service)

        self.running = True
        self.stats: UsageStats | None = None
        self.menu_data: MenuBarData | None = None
        self._show_percentage = True
        self._popup_open = False
        self._lock = threading.RLock()
        self._wake = threading.Event()

        self.icon = pystray.Icon(
            'usage_meter',
            icon=create_icon_image(0),
            title=T['loading'],
            menu=pystray.Menu(
                pystray.MenuItem(T['title'].replace('&', '&&'), self.on_show_popup, default=True),
                pystray.MenuItem(T['refresh'], self.on_refresh),
                pystray.MenuItem(T['data_source'], pystray.Menu(*(
                    self._radio_item(T[f'source_{value}'], 'data_source', value) for value in DATA_SOURCES
                ))),
                pystray.MenuItem(T['display_mode'], pystray.Menu(*(
                    self._radio_item(T[f'mode_{value}'], 'menu_bar_display_mode', value) for value in DISPLAY_MODES
                ))),
                pystray.MenuItem(T['cost_source'], pystray.Menu(*(
                    self._radio_item(T[f'cost_{value}'], 'menu_bar_cost_source', value) for value in COST_SOURCES
                ))),
                pystray.MenuItem(T['settings'], self.on_show_settings),
                pystray.MenuItem(T['quit'], self.on_quit),
            ),
        )
        self.notifications = NotificationService(self.icon.notify)

    @property
    def service(self) -> UsageService:
        return self.services[self.settings.data_source]

    def _configure(self, service: UsageService) -> None:
        s = self.settings
        service.update_configuration(
            plan=s.plan,
            custom_token_limit=s.custom_token_limit,
            menu_bar_cost_source=s.menu_bar_cost_source,
            reset_hour=s.reset_hour,
            timezone=s.timezone,
            warning_threshold=s.warning_threshold,
            critical_threshold=s.critical_threshold,
        )

    def _radio_item(self, text: str, key: str, value: str) -> pystray.MenuItem:
        return pystray.MenuItem(
            text,
            lambda icon, item: self.on_select_option(key, value),
            checked=lambda item: getattr(self.settings, key) == value,
            radio=True,
        )

    # ── Menu callbacks (run on pystray's thread) ──

    def on_show_popup(self, icon: Any = None, item: Any = None) -> None:
        if self._popup_open:
            return
        threading.Thread(target=self._open_popup, daemon=True).start()

    def on_show_settings(self, icon: Any = None, item: Any = None) -> None:
        threading.Thread(target=self._open_settings, daemon=True).start()

    def on_refresh(self, icon: Any = None, item: Any = None) -> None:
        threading.Thread(target=self.refresh_now, daemon=True).start()

    def on_select_option(self, key: str, value: str) -> None:
        threading.Thread(target=self._set_option, args=(key, value), daemon=True).start()

    def on_quit(self, icon: Any = None, item: Any = None) -> None:
        self.running = False
        self._wake.set()
        self.icon.stop()

    def _set_option(self, key: str, value: str) -> None:
        try:
            self.apply_settings(**{key: value})
        except (OSError, ValueError) as e:
            logger.error('Could not change %s: %s', key, e)

    def _open_popup(self) -> None:
        from .popup import UsagePopup

        self._popup_open = True
        try:
            if self.stats is None:
                self.update()
            UsagePopup(self)
        except Exception:
            logger.exception('Popup failed')
        finally:
            self._popup_open = False

    def _open_settings(self) -> None:
        from .popup import SettingsWindow

        try:
            SettingsWindow(self)
        except Exception:
            logger.exception('Settings window failed')

    # ── Settings ──

    def apply_settings(self, **changes: Any) -> AppSettings:
        """Persist *changes* and push them to the data sources.

        Raises
        ------
        ValueError
            If the merged settings are invalid.
        OSError
            If the settings file cannot be written.
        """
        old = self.settings
        self.settings = self.settings_service.save(**changes)
        for service in self.services.values():
            self._configure(service)

        if self.settings.menu_bar_display_mode != old.menu_bar_display_mode:
            self._show_percentage = True
            self.update_display()
        self.refresh_now()
        return self.settings

    # ── Polling ──

    def refresh_now(self) -> None:
        """Drop the active source's cache and fetch immediately."""
        self.service.invalidate()
        self.update()

    def update(self) -> None:
        """Fetch current stats and update the tray icon, title and tooltip."""
        with self._lock:
            service = self.service
            try:
                self.stats = service.get_usage_stats()
                self.menu_data = service.menu_bar_data(self.stats)
            except Exception:
                logger.exception('Error updating tray')
                self.menu_data = None
                self.icon.icon = create_status_image('!')
                self.icon.title = format_tooltip(None, service.last_error or T['unexpected_error'])
                return

            self.notifications.check_and_notify(self.menu_data)
            self.update_display()

    def update_display(self) -> None:
        with self._lock:
            data = self.menu_data
            if data is None:
                return

            mode = self.settings.menu_bar_display_mode
            show_pct = self._show_percentage
            label = format_title(data, mode, show_pct) if shows_cost(mode, show_pct) else None
            self.icon.icon = create_icon_image(data.percentage_used, data.status, label)
            self.icon.title = format_tooltip(data, self.service.last_error, bool(self.stats and self.stats.is_mock))

    def poll_loop(self) -> None:
        """Fetch every ``POLL_INTERVAL`` seconds and flip the alternate display in between."""
        time.sleep(config.POLL_INITIAL_DELAY)
        next_poll = 0.0
        next_toggle = time.monotonic() + config.DISPLAY_TOGGLE_INTERVAL
        while self.running:
            now = time.monotonic()
            if now >= next_poll:
                self.update()
                next_poll = now + config.POLL_INTERVAL
            if now >= next_toggle:
                next_toggle = now + config.DISPLAY_TOGGLE_INTERVAL
                if self.settings.menu_bar_display_mode == 'alternate':
                    self._show_percentage = not self._show_percentage
                    self.update_display()

            self._wake.wait(min(next_poll, next_toggle) - time.monotonic())

    def _on_icon_ready(self, icon: Any) -> None:
        """Called by pystray in a separate thread once the tray icon is set up."""
        try:
            icon.visible = True
            if self.settings.data_source == 'zai' and not getattr(self.service, 'api_key', ''):
                icon.notify(T['warn_no_token'], T['title'])
            self.poll_loop()
        except Exception:
            crash_log(traceback.format_exc())

    def run(self) -> None:
        self.icon.run(setup=self._on_icon_ready)


def crash_log(msg: str) -> None:
    """Log a crash and show it in a message box (for windowless builds)."""
    logger.critical(msg)
    try:
        from tkinter import messagebox

        messagebox.showerror(f"{T['title']} - {T['error_label']}", msg[:2000])
    except Exception:
        logger.exception('Could not show crash message')
