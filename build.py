"""
Build Script
=============

Builds a standalone executable for Usage Meter using PyInstaller.

Usage:
    python build.py

Produces:
    dist/UsageMeter(.exe)
"""
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).parent
DIST = ROOT / 'dist'
NAME = 'UsageMeter'
DATA_SEP = ';' if sys.platform == 'win32' else ':'


def build() -> None:
    """Run PyInstaller to produce a windowless one-file build, locale files included."""
    print('Starting PyInstaller build ...')
    cmd = [
        sys.executable, '-m', 'PyInstaller', '--clean', '--noconfirm', '--onefile', '--windowed',
        '--name', NAME,
        '--add-data', f"{ROOT / 'usage_meter' / 'locale'}{DATA_SEP}usage_meter/locale",
        str(ROOT / 'usage_meter' / '__main__.py'),
    ]
    subprocess.check_call(cmd, cwd=str(ROOT))

    exe = DIST / (f'{NAME}.exe' if sys.platform == 'win32' else NAME)
    if exe.exists():
        size_mb = exe.stat().st_size / (1024 * 1024)
        print(f'\nBuild successful!  {exe}  ({size_mb:.1f} MB)')
    else:
        print('\nBuild failed - executable not found.')
        sys.exit(1)


if __name__ == '__main__':
    build()
