"""Root logger configuration."""

import logging
import sys

from dexbot.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str | None = None):
    """Configure the root logger once at startup."""
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    if not any(getattr(h, "_dexbot", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._dexbot = True
        root.addHandler(handler)

    # Quiet chatty client libraries
    for name in ("httpx", "apscheduler.executors.default", "telegram.ext"):
        logging.getLogger(name).setLevel(logging.WARNING)
