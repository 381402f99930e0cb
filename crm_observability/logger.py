"""Process-wide logger shared by every module of the engine."""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(name: str = "crm_observability", level: Optional[str] = None) -> logging.Logger:
    """Create (or reuse) the named logger with a single stream handler.

    Args:
        name: Logger name
        level: Log level name, falls back to LOG_LEVEL env var then INFO

    Returns:
        Configured logger instance
    """
    _logger = logging.getLogger(name)
    _logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())

    if not _logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        _logger.addHandler(handler)

    return _logger


logger = setup_logger()
