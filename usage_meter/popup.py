"""Popup window with detailed usage, and the settings window."""
from __future__ import annotations

import logging
import tkinter as tk
from datetime import datetime, timezone
from pathlib import Path
from tkinter import ttk
from typing import TYPE_CHECKING, Any

from PIL import ImageGrab

from .config import BAR_BG, BAR_FG, BAR_FG_HIGH, BAR_FG_WARN, BG, FG, FG_DIM, FG_HEADING, SCREENSHOT_DIR
from .display import format_currency, format_number
from .i18n import T
from .models import UsageStats
from .settings import COST_SOURCES, DATA_SOURCES, DISPLAY_MODES, PLANS
from .stats import usage_status

if TYPE_CHECKING:
    from .tray import UsageMeterApp

logger = logging.getLogger(__name__)

FONT = 'Segoe UI'
STATUS_BAR_COLORS = {'safe': BAR_FG, 'warning': BAR_FG_WARN, 'critical': BAR_FG_HIGH}


def session_elapsed_pct(stats: UsageStats, now: datetime | None = None) -> float | None:
    """Return how much of the active session window has elapsed (0-100), or None."""
    window = stats.session_window
    if window is None:
        return None

    now = now or datetime.now(timezone.utc)
    total = (window.end_time - window.start_time).total_seconds()
    elapsed = (now - window.start_time).total_seconds()
    return max(0.0, min(100.0, elapsed / total * 100)) if total > 0 else None


def screenshot_path(directory: Path = SCREENSHOT_DIR, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime('%Y-%m-%dT%H-%M-%S')
    return directory / f'UsageMeter-Screenshot-{stamp}.png'


def screenshot_error_message(error: Exception) -> str:
    if isinstance(error, PermissionError):
        return T['screenshot_permission']
    if isinstance(error, OSError):
        return T['screenshot_dir_error']
    return T['screenshot_capture_error']


class UsagePopup:
    """Dark-themed popup window showing plan, usage bar and burn-rate details."""

    WIDTH = 360
    REFRESH_MS = 30_000

    def __init__(self, app: UsageMeterApp) -> None:
        """Create and display a popup window with usage details.

        Blocks the calling thread until the window is closed (runs its own mainloop).

        Parameters
        ----------
        app : UsageMeterApp
            Parent application providing ``stats`` and ``settings``.
        """
        self.app = app
        self.root = tk.Tk()
        self.root.withdraw()
        self.win = tk.Toplevel(self.root)
        self.win.overrideredirect(True)
        self.win.attributes('-topmost', True)  # type: ignore[call-overload]  # tkinter overload stubs incomplete
        self.win.configure(bg=BG)
        self.win.minsize(self.WIDTH, 0)
        self.win.resizable(False, False)

        self._main_frame: tk.Frame | None = None
        self._content_frame: tk.Frame | None = None
        self._status_label: tk.Label | None = None
        self._settings_open = False
        self._build_content()

        self.win.update_idletasks()
        self._position_near_tray()
        self._schedule_refresh()

        self.win.bind('<Escape>', lambda e: self._close())
        self.win.bind('<FocusOut>', self._on_focus_out)
        self.win.focus_force()

        self.root.mainloop()

    def _close(self) -> None:
        try:
            self.root.destroy()
        except tk.TclError:
            pass

    def _on_focus_out(self, event: Any) -> None:
        if not self._settings_open:
            self._close()

    def _schedule_refresh(self) -> None:
        try:
            self.root.after(self.REFRESH_MS, self._on_refresh)
        except tk.TclError:
            pass

    def _on_refresh(self) -> None:
        try:
            self._build_usage_section()
            self._schedule_refresh()
        except tk.TclError:
            pass

    def _position_near_tray(self) -> None:
        """Place the popup near the tray: top-right on macOS, bottom-right elsewhere."""
        w = self.win.winfo_width()
        h = self.win.winfo_height()
        sx = self.win.winfo_screenwidth()
        sy = self.win.winfo_screenheight()
        x = sx - w - 12
        y = 30 if self.win.tk.call('tk', 'windowingsystem') == 'aqua' else sy - h - 60
        self.win.geometry(f'+{x}+{y}')

    def _build_content(self) -> None:
        """Build the popup layout: title bar, usage section and buttons."""
        pad = 16
        self._main_frame = tk.Frame(self.win, bg=BG, padx=pad)
        self._main_frame.pack(fill='both', expand=True, pady=(12, 16))

        # ── Title bar ──
        title_frame = tk.Frame(self._main_frame, bg=BG)
        title_frame.pack(fill='x', pady=(0, 4))
        tk.Label(title_frame, text=T['title'], font=(FONT, 13, 'bold'), fg=FG_HEADING, bg=BG).pack(side='left')
        close_btn = tk.Label(title_frame, text='×', font=(FONT, 16), fg=FG_DIM, bg=BG, cursor='hand2')
        close_btn.pack(side='right')
        close_btn.bind('<Button-1>', lambda e: self._close())

        # ── Usage section (rebuilt on refresh) ──
        self._build_usage_section()

        # ── Buttons ──
        buttons = tk.Frame(self._main_frame, bg=BG)
        buttons.pack(side='bottom', fill='x', pady=(12, 0))
        for text, command in (
            (T['refresh'], self._on_refresh_clicked),
            (T['screenshot'], self._on_screenshot),
            (T['settings'], self._on_settings),
        ):
            btn = tk.Label(buttons, text=text, fg=FG, bg=BAR_BG, font=(FONT, 9), padx=8, pady=3, cursor='hand2')
            btn.pack(side='left', padx=(0, 6))
            btn.bind('<Button-1>', lambda e, cmd=command: cmd())

        self._status_label = tk.Label(
            self._main_frame, text='', fg=FG_DIM, bg=BG, font=(FONT, 8), wraplength=self.WIDTH - 32, justify='left',
        )
        self._status_label.pack(side='bottom', anchor='w')

    def _build_usage_section(self) -> None:
        """Build the usage section from scratch, replacing any previous content."""
        stats = self.app.stats
        settings = self.app.settings

        if self._content_frame:
            self._content_frame.destroy()
        self._content_frame = frame = tk.Frame(self._main_frame, bg=BG)
        frame.pack(fill='x')

        if stats is None:
            tk.Label(frame, text=T['loading'], fg=FG_DIM, bg=BG, font=(FONT, 10)).pack(anchor='w', pady=4)
            return

        error = self.app.service.last_error
        if stats.is_mock:
            self._notice(frame, T['sample_data'] + (f'\n{error[:120]}' if error else ''))
        elif error:
            self._notice(frame, T['stale_data'] + f'\n{error[:120]}')

        # ── Plan ──
        self._section_heading(frame, T['account'])
        self._info_row(frame, T['plan'], stats.current_plan)
        self._info_row(frame, T['data_source'], T[f'source_{settings.data_source}'])

        # ── Usage bar ──
        self._section_heading(frame, T['usage'])
        status = usage_status(stats.percentage_used, settings.warning_threshold, settings.critical_threshold)
        self._usage_bar(frame, stats.percentage_used, STATUS_BAR_COLORS[status], session_elapsed_pct(stats))
        self._info_row(frame, T['tokens_used'], f'{format_number(stats.tokens_used)} / {format_number(stats.token_limit)}')
        self._info_row(frame, T['remaining'], format_number(stats.tokens_remaining))
        reset = stats.actual_reset_info.formatted_time_remaining if stats.actual_reset_info else T['no_session']
        self._info_row(frame, T['session_reset'], reset)

        # ── Burn rate and prediction ──
        self._section_heading(frame, T['burn_rate'])
        velocity = stats.velocity
        trend = T[f'trend_{velocity.trend}']
        self._info_row(frame, T['current_rate'], T['per_hour'].format(n=format_number(velocity.current)))
        self._info_row(frame, T['average_24h'], T['per_hour'].format(n=format_number(velocity.average_24h)))
        self._info_row(frame, T['trend'], f'{trend} ({velocity.trend_percent:+.1f}%)')
        prediction = stats.prediction
        if prediction.depletion_time:
            depleted = prediction.depletion_time.astimezone().strftime('%a %H:%M')
            self._info_row(frame, T['depletion'], f'{depleted} ({prediction.confidence}%)')
        self._info_row(frame, T['daily_budget'], format_number(prediction.recommended_daily_limit))
        cycle = stats.reset_info
        self._info_row(
            frame, T['cycle_reset'],
            f"{cycle.next_reset_time.strftime('%Y-%m-%d %H:%M')} ({cycle.percent_until_reset:.0f}%)",
        )

        # ── Today / 7 days ──
        self._section_heading(frame, T['summary'])
        show_cost = stats.has_cost_data
        week_tokens = sum(d.total_tokens for d in stats.this_week)
        today_text = format_number(stats.today.total_tokens)
        if show_cost:
            today_text += f' · {format_currency(stats.today.total_cost)}'
        self._info_row(frame, T['today'], today_text)
        week_text = format_number(week_tokens)
        if show_cost:
            week_text += f' · {format_currency(sum(d.total_cost for d in stats.this_week))}'
        self._info_row(frame, T['last_7_days'], week_text)
        self._info_row(frame, T['daily_average'], format_number(week_tokens / 7))

        # ── Models today ──
        if stats.today.models:
            self._section_heading(frame, T['models_today'])
            total = stats.today.total_tokens or 1
            ranked = sorted(stats.today.models.items(), key=lambda kv: kv[1].tokens, reverse=True)
            for model, usage in ranked:
                self._info_row(frame, model, f'{format_number(usage.tokens)} ({usage.tokens / total * 100:.1f}%)')

    def _notice(self, parent: tk.Frame, text: str) -> None:
        tk.Label(
            parent, text=text, fg=BAR_FG_HIGH, bg=BG, font=(FONT, 9), wraplength=self.WIDTH - 32, justify='left',
        ).pack(anchor='w', pady=4)

    def _section_heading(self, parent: tk.Frame, text: str) -> None:
        tk.Label(parent, text=text, font=(FONT, 9, 'bold'), fg=FG_DIM, bg=BG).pack(anchor='w', pady=(8, 2))

    def _info_row(self, parent: tk.Frame, label: str, value: str) -> None:
        row = tk.Frame(parent, bg=BG)
        row.pack(fill='x', pady=0)
        tk.Label(row, text=label, fg=FG_DIM, bg=BG, font=(FONT, 10)).pack(side='left')
        tk.Label(row, text=value, fg=FG, bg=BG, font=(FONT, 10)).pack(side='right')

    def _usage_bar(self, parent: tk.Frame, pct: float, color: str, marker_pct: float | None) -> None:
        row = tk.Frame(parent, bg=BG)
        row.pack(fill='x', pady=(4, 4))
        tk.Label(row, text=f'{pct:.1f}%', fg=FG, bg=BG, font=(FONT, 10)).pack(side='right')

        bar_frame = tk.Frame(parent, bg=BAR_BG, height=8)
        bar_frame.pack(fill='x', padx=2, pady=(0, 2))
        bar_frame.pack_propagate(False)
        fill_pct = max(0.0, min(1.0, pct / 100))
        if fill_pct > 0:
            tk.Frame(bar_frame, bg=color).place(relwidth=fill_pct, relheight=1.0)
        if marker_pct is not None:
            tk.Frame(bar_frame, bg='#ffffff', width=1).place(relx=marker_pct / 100, relheight=1.0, width=1)

    def _show_status(self, text: str) -> None:
        if self._status_label:
            self._status_label.configure(text=text)

    def _on_refresh_clicked(self) -> None:
        self._show_status(T['refreshing'])
        self.win.update_idletasks()
        self.app.refresh_now()
        self._build_usage_section()
        self._show_status('')

    def _on_screenshot(self) -> None:
        """Save a PNG of the popup under the screenshots directory."""
        try:
            self.win.update_idletasks()
            x, y = self.win.winfo_rootx(), self.win.winfo_rooty()
            w, h = self.win.winfo_width(), self.win.winfo_height()
            image = ImageGrab.grab(bbox=(x, y, x + w, y + h))
            path = screenshot_path()
            path.parent.mkdir(parents=True, exist_ok=True)
            image.save(path, 'PNG')
        except Exception as e:
            logger.exception('Screenshot failed')
            self._show_status(screenshot_error_message(e))
            return

        logger.info('Screenshot saved to %s', path)
        self._show_status(T['screenshot_saved'].format(path=path))

    def _on_settings(self) -> None:
        self._settings_open = True
        window = SettingsWindow(self.app, parent=self.root)
        window.win.bind('<Destroy>', self._on_settings_closed, add='+')

    def _on_settings_closed(self, event: Any) -> None:
        if event.widget is not event.widget.winfo_toplevel():
            return
        self._settings_open = False
        try:
            self._build_usage_section()
        except tk.TclError:
            pass


class SettingsWindow:
    """Form editing every field of :class:`AppSettings`.

    Without *parent* the window creates its own Tk root and blocks in its
    mainloop, like :class:`UsagePopup`.
    """

    def __init__(self, app: UsageMeterApp, parent: tk.Misc | None = None) -> None:
        self.app = app
        self._own_root = parent is None
        if parent is None:
            self.root = tk.Tk()
            self.root.withdraw()
            parent = self.root
        self.win = tk.Toplevel(parent)
        self.win.title(T['settings'])
        self.win.configure(bg=BG, padx=16, pady=12)
        self.win.attributes('-topmost', True)  # type: ignore[call-overload]
        self.win.resizable(False, False)
        self.win.protocol('WM_DELETE_WINDOW', self._close)

        settings = app.settings
        self.vars: dict[str, tk.StringVar] = {}
        self._row = 0
        self._combo('data_source', DATA_SOURCES, settings.data_source, T['data_source'])
        self._combo('plan', PLANS, settings.plan, T['plan'])
        self._entry('custom_token_limit', settings.custom_token_limit, T['custom_limit'])
        self._combo('menu_bar_display_mode', DISPLAY_MODES, settings.menu_bar_display_mode, T['display_mode'])
        self._combo('menu_bar_cost_source', COST_SOURCES, settings.menu_bar_cost_source, T['cost_source'])
        self._entry('timezone', settings.timezone, T['timezone'])
        self._entry('reset_hour', settings.reset_hour, T['reset_hour'])
        self._entry('warning_threshold', settings.warning_threshold, T['warning_threshold'])
        self._entry('critical_threshold', settings.critical_threshold, T['critical_threshold'])

        self._error = tk.Label(self.win, text='', fg=BAR_FG_HIGH, bg=BG, font=(FONT, 9), wraplength=300, justify='left')
        self._error.grid(row=self._row, column=0, columnspan=2, sticky='w', pady=(8, 0))
        ttk.Button(self.win, text=T['save'], command=self._save).grid(row=self._row + 1, column=1, sticky='e', pady=(8, 0))

        self.win.focus_force()
        if self._own_root:
            self.root.mainloop()

    def _label(self, text: str) -> None:
        tk.Label(self.win, text=text, fg=FG, bg=BG, font=(FONT, 10)).grid(row=self._row, column=0, sticky='w', pady=2)

    def _combo(self, key: str, values: tuple[str, ...], current: str, label: str) -> None:
        self._label(label)
        var = self.vars[key] = tk.StringVar(value=current)
        ttk.Combobox(self.win, textvariable=var, values=values, state='readonly', width=18).grid(
            row=self._row, column=1, sticky='e', pady=2,
        )
        self._row += 1

    def _entry(self, key: str, current: Any, label: str) -> None:
        self._label(label)
        var = self.vars[key] = tk.StringVar(value='' if current is None else str(current))
        ttk.Entry(self.win, textvariable=var, width=20).grid(row=self._row, column=1, sticky='e', pady=2)
        self._row += 1

    def _close(self) -> None:
        try:
            if self._own_root:
                self.root.destroy()
            else:
                self.win.destroy()
        except tk.TclError:
            pass

    def _save(self) -> None:
        try:
            changes = parse_settings_form({key: var.get() for key, var in self.vars.items()})
            self.app.apply_settings(**changes)
        except ValueError as e:
            self._error.configure(text=str(e))
            return
        except OSError as e:
            logger.error('Could not save settings: %s', e)
            self._error.configure(text=T['settings_save_error'].format(error=e))
            return

        self._close()


def parse_settings_form(values: dict[str, str]) -> dict[str, Any]:
    """Convert the settings form's strings to typed values.

    Raises
    ------
    ValueError
        If a numeric field does not parse.
    """
    changes: dict[str, Any] = dict(values)
    changes['timezone'] = values.get('timezone', '').strip()

    limit = values.get('custom_token_limit', '').strip().replace(',', '')
    try:
        changes['custom_token_limit'] = int(limit) if limit else None
        changes['reset_hour'] = int(values.get('reset_hour', '0').strip() or 0)
        changes['warning_threshold'] = float(values.get('warning_threshold', '70').strip())
        changes['critical_threshold'] = float(values.get('critical_threshold', '90').strip())
    except ValueError as e:
        raise ValueError(T['settings_invalid_number']) from e

    return changes
