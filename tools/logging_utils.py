"""Logging Utilities for the Powermeal Menu Assistant
===================================================

Centralized logging configuration and utilities.

Usage:
    from tools.logging_utils import get_logger

    logger = get_logger(__name__)
    logger.info("Operation completed successfully")
    logger.error("Operation failed")

Standards:
    - Backend/operational code: MUST use logger
    - User-facing output: use tools.console_ui.ConsoleUI
    - Configuration: config.LOGGING_CONFIG
    - Location: <config dir>/logs/powermeal.log (10MB rotation, 5 backups)
"""

import logging
import logging.config
import sys

from config import LOGGING_CONFIG, LOG_DIR

_configured = False


def setup_logging():
    """
    Initialize logging configuration once.

    Idempotent - safe to call multiple times. A log directory that cannot be
    created leaves the console handler only.
    """
    global _configured
    if _configured:
        return
    _configured = True

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        logging.config.dictConfig(LOGGING_CONFIG)
    except (OSError, ValueError) as e:
        console_only = {**LOGGING_CONFIG, "handlers": {"console": LOGGING_CONFIG["handlers"]["console"]}}
        console_only["root"] = {**LOGGING_CONFIG["root"], "handlers": ["console"]}
        logging.config.dictConfig(console_only)
        print(f"Warning: file logging disabled: {e}", file=sys.stderr)


def get_logger(name: str) -> logging.Logger:
    """
    Get logger for module.

    Args:
        name: Module name (use __name__)

    Returns:
        Configured logger instance

    Example:
        logger = get_logger(__name__)
        logger.info("Starting process")
    """
    setup_logging()
    return logging.getLogger(name)
