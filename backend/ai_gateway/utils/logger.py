"""
Logging setup shared by every gateway module.
Usage: logger = setup_logger(__name__)
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LEVEL = os.getenv("GATEWAY_LOG_LEVEL", "INFO")


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Return a logger with a single stdout handler.
    Calling it twice for the same name does not duplicate handlers.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False

    logger.setLevel((level or DEFAULT_LEVEL).upper())
    return logger


def set_log_level(level: str):
    """Change the level of every gateway logger already created"""
    for name in list(logging.root.manager.loggerDict):
        if name.startswith("ai_gateway"):
            logging.getLogger(name).setLevel(level.upper())
