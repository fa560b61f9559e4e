from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_format: str | None = None) -> logging.Logger:
    """Send ``zkd`` logs to stderr at the given level and return the package logger."""
    logger = logging.getLogger("zkd")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(log_format or LOG_FORMAT))
        logger.addHandler(handler)
    return logger
