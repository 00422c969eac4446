"""Process-wide logging setup."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

_configured = False


def configure_logging(level: str | int = logging.INFO) -> None:
    """Install a single stream handler on the ``rep_stock`` logger.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured
    logger = logging.getLogger('rep_stock')
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True
