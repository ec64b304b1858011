"""
Usage Meter
===========

Displays token usage of Claude Code (local logs) or the z.ai quota API as a
system tray icon. Left-click the icon to see a detailed usage popup.
"""

__version__ = '1.0.0'
