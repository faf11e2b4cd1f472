"""Logging setup shared by the API and the CLI."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``timebudget`` logger."""
    logger = logging.getLogger("timebudget")
    logger.setLevel(level)

    if not any(getattr(h, "_timebudget", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._timebudget = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
