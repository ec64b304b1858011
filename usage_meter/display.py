"""Text shown in the tray title, tooltip and popup."""
from __future__ import annotations

from .i18n import T
from .models import MenuBarData


def format_number(n: float) -> str:
    """Return ``1.2M``, ``3.4K`` or a grouped integer."""
    if n >= 1_000_000:
        return f'{n / 1_000_000:.1f}M'
    if n >= 1_000:
        return f'{n / 1_000:.1f}K'
    return f'{round(n):,}'


def format_currency(amount: float) -> str:
    return f'${amount:,.2f}'


def shows_cost(mode: str, show_percentage: bool = True) -> bool:
    """True when the tray should show the cost rather than the percentage."""
    return mode == 'cost' or (mode == 'alternate' and not show_percentage)


def format_title(data: MenuBarData | None, mode: str, show_percentage: bool = True) -> str:
    """Return the menu-bar text for *mode* (``percentage``, ``cost`` or ``alternate``).

    In ``alternate`` mode *show_percentage* selects which of the two is shown.
    """
    if data is None:
        return '--'

    if shows_cost(mode, show_percentage):
        return format_currency(data.cost)
    return f'{data.percentage_used:.0f}%'


def format_tooltip(data: MenuBarData | None, error: str | None = None, is_mock: bool = False) -> str:
    """Format usage data as short tooltip text."""
    if data is None:
        return f"{T['error_label']}\n{(error or '')[:80]}"

    lines = [T['title']]
    lines.append(T['tooltip_usage'].format(
        pct=data.percentage_used, used=format_number(data.tokens_used), limit=format_number(data.token_limit),
    ))
    if data.time_until_reset:
        lines.append(data.time_until_reset)
    if is_mock:
        lines.append(T['sample_data'])
    elif error:
        lines.append(T['stale_data'])

    # Windows limits tray tooltips to 127 characters
    return '\n'.join(lines)[:127]
