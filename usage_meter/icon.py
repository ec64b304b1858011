"""Tray icon images drawn with Pillow.

Layout (64x64): usage percentage (or "U" while idle) at the top, one
progress bar flush to the bottom, tinted by usage status.
"""
from __future__ import annotations

import functools
import os
import sys

from PIL import Image, ImageDraw, ImageFont

from .models import Status

ICON_SIZE = 64
TRANSPARENT = (0, 0, 0, 0)
FG = (255, 255, 255, 255)
FG_HALF = (255, 255, 255, 80)
FG_DIM = (255, 255, 255, 140)
STATUS_COLORS: dict[Status, tuple[int, int, int, int]] = {
    'safe': (16, 185, 129, 255),
    'warning': (245, 158, 11, 255),
    'critical': (239, 68, 68, 255),
}


def _font_candidates(symbol: bool) -> tuple[str, ...]:
    if sys.platform == 'win32':
        windir = os.environ.get('WINDIR', 'C:\\Windows')
        if symbol:
            return (f'{windir}\\Fonts\\seguisym.ttf', 'seguisym.ttf')
        return (f'{windir}\\Fonts\\arialbd.ttf', 'arialbd.ttf', f'{windir}\\Fonts\\arial.ttf', 'arial.ttf')
    if sys.platform == 'darwin':
        return ('/System/Library/Fonts/Helvetica.ttc', '/Library/Fonts/Arial Bold.ttf', 'Arial Bold.ttf')
    return ('DejaVuSans-Bold.ttf', '/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf', 'LiberationSans-Bold.ttf')


@functools.lru_cache(maxsize=None)
def load_font(size: int, symbol: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a bold system font at *size*, falling back to Pillow's built-in font."""
    for name in _font_candidates(symbol):
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue

    return ImageFont.load_default()


def fit_font(draw: ImageDraw.ImageDraw, text: str, width: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Return the largest font (40px down to 14px) that fits *text* into *width*."""
    for size in range(40, 13, -2):
        font = load_font(size)
        bbox = draw.textbbox((0, 0), text, font=font)
        if bbox[2] - bbox[0] <= width:
            return font
    return load_font(14)


def create_icon_image(pct: float, status: Status = 'safe', label: str | None = None) -> Image.Image:
    """Create the tray icon: percentage (or *label*) above a usage bar."""
    S = ICON_SIZE
    img = Image.new('RGBA', (S, S), TRANSPARENT)
    draw = ImageDraw.Draw(img)

    # ── Top text: label, "✕" at 100%, the percentage once visible, else "U" ──
    stroke_width = 0
    if label:
        text, font = label, fit_font(draw, label, S)
    elif pct >= 100:
        text, font = '\u2715', load_font(36, symbol=True)
        stroke_width = 2
    elif pct >= 1:
        text, font = f'{pct:.0f}', load_font(40 if pct < 10 else 34)
    else:
        text, font = 'U', load_font(42)

    bbox = draw.textbbox((0, 0), text, font=font, stroke_width=stroke_width)
    tw = bbox[2] - bbox[0]
    draw.text(((S - tw) / 2 - bbox[0], -bbox[1]), text, fill=FG, font=font, stroke_width=stroke_width, stroke_fill=FG)

    # ── Progress bar – full width, flush to bottom ──
    bar_h = 14
    y = S - bar_h
    draw.rectangle([0, y, S - 1, S - 1], fill=FG_HALF)
    fill_w = max(0, min(S, int(S * pct / 100)))
    if fill_w > 0:
        draw.rectangle([0, y, fill_w - 1, S - 1], fill=STATUS_COLORS[status])

    return img


def create_status_image(text: str) -> Image.Image:
    """Create a centered-text icon for error/status states."""
    S = ICON_SIZE
    img = Image.new('RGBA', (S, S), TRANSPARENT)
    draw = ImageDraw.Draw(img)
    font = load_font(46)
    bbox = draw.textbbox((0, 0), text, font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    draw.text(((S - tw) / 2 - bbox[0], (S - th) / 2 - bbox[1]), text, fill=FG_DIM, font=font)

    return img
