"""Logging configuration shared by the CLI and the API server."""

from __future__ import annotations

import logging
import os
import sys

_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Install one stream handler on the ``exchangeql`` logger.

    Calling this twice does not add a second handler. The level defaults to
    ``EXQL_LOG_LEVEL`` or INFO.
    """
    logger = logging.getLogger("exchangeql")
    if level is None:
        level = os.environ.get("EXQL_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = level.upper()
    logger.setLevel(level)

    if not any(getattr(h, "_exql_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._exql_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.propagate = False
    return logger
