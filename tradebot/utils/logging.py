"""Process-wide logging setup."""

import logging
import sys

from tradebot.config import settings

_NOISY_LOGGERS = ("httpx", "apscheduler", "ccxt", "telegram.ext")


def setup_logging():
    """Configure the root logger once; later calls are no-ops."""
    root = logging.getLogger()
    if any(getattr(h, "_tradebot", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )
    handler._tradebot = True
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
