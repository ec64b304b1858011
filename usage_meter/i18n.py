"""UI strings loaded from ``locale/*.json`` for the system language."""
from __future__ import annotations

import json
import locale
from pathlib import Path
from typing import Any

LOCALE_DIR = Path(__file__).parent / 'locale'


def detect_lang_code(lang: str, locale_dir: Path = LOCALE_DIR) -> str:
    """Detect locale file code from system locale string using convention-based lookup.

    Lookup chain: ``{lang}-{REGION}.json`` → ``{lang}.json`` → ``en.json``.
    No mapping required - the locale directory structure *is* the configuration.

    Parameters
    ----------
    lang : str
        System locale string, e.g. ``'de_DE'`` or ``'German_Germany'``.
    locale_dir : Path
        Directory containing the locale files.

    Returns
    -------
    str
        Locale file code (without ``.json``).
    """
    if not lang:
        return 'en'

    normalized = locale.normalize(lang).split('.')[0]
    parts = normalized.split('_', 1)
    base = parts[0].lower()

    # locale.normalize() doesn't resolve all Windows names (e.g. 'Spanish_Mexico').
    if len(base) > 3:
        base = locale.normalize(parts[0]).split('.')[0].split('_')[0].lower()

    region = parts[1] if len(parts) > 1 and len(base) <= 3 else ''

    if region and (locale_dir / f'{base}-{region}.json').exists():
        return f'{base}-{region}'
    if (locale_dir / f'{base}.json').exists():
        return base

    return 'en'


def load_translations(lang: str | None = None) -> dict[str, Any]:
    """Load translations for *lang* (default: system language), falling back to English.

    Keys missing from a partial translation are filled in from ``en.json``.
    """
    if lang is None:
        lang = locale.getlocale()[0] or ''
    lang_code = detect_lang_code(lang)

    strings = json.loads((LOCALE_DIR / 'en.json').read_text(encoding='utf-8'))
    if lang_code != 'en':
        strings.update(json.loads((LOCALE_DIR / f'{lang_code}.json').read_text(encoding='utf-8')))

    return strings


T: dict[str, Any] = load_translations()
