"""Diagnostic output for the ``tshtraces`` package.

Non-fatal anomalies are logged at WARNING and always shown. Progress
messages are logged at INFO and only shown after :func:`verbose` is called.
Verbosity never changes what gets computed.
"""

from __future__ import annotations

import logging
import sys


PACKAGE_LOGGER = "tshtraces"
LOG_FORMAT = "%(name)s: %(levelname)s: %(message)s"

_handler: logging.Handler | None = None


def _ensure_handler(logger: logging.Logger) -> None:
    global _handler
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(_handler)


def verbose(enabled: bool = True) -> None:
    logger = logging.getLogger(PACKAGE_LOGGER)
    _ensure_handler(logger)
    logger.setLevel(logging.INFO if enabled else logging.WARNING)
