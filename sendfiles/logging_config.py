import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to the LOG_LEVEL
            environment variable, then WARNING.

    Returns:
        The configured "sendfiles" logger
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "WARNING")

    level = getattr(logging, log_level.upper(), logging.WARNING)

    logger = logging.getLogger("sendfiles")
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logger.addHandler(handler)
    logger.propagate = False

    return logger
