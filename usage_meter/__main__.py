"""Entry point: ``python -m usage_meter`` or the ``usage-meter`` script."""
from __future__ import annotations

import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler

from usage_meter import config

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def setup_logging(level: int = logging.INFO) -> None:
    """Log to ``<app home>/usage-meter.log`` and, when attached to a console, stderr."""
    handlers: list[logging.Handler] = []
    home = config.app_home()
    try:
        home.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(home / 'usage-meter.log', maxBytes=1_000_000, backupCount=2, encoding='utf-8'))
    except OSError:
        pass
    if sys.stderr is not None:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


def main() -> None:
    setup_logging(logging.DEBUG if '--debug' in sys.argv[1:] else logging.INFO)

    from usage_meter.tray import UsageMeterApp, crash_log

    try:
        app = UsageMeterApp()
        app.run()
    except Exception:
        crash_log(traceback.format_exc())


if __name__ == '__main__':
    main()
