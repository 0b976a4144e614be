"""
Logging configuration for Chime Reminder Engine.
Every module logs under the ``chime`` hierarchy; handlers are attached once
to the ``chime`` logger and inherited by the rest.
"""

import logging
import logging.handlers
import colorlog
from config.settings import (
    DEBUG_MODE, LOG_BACKUP_COUNT, LOG_DATE_FORMAT, LOG_FILE, LOG_FORMAT,
    LOG_MAX_BYTES, QUIET_LOGGERS,
)

ROOT_LOGGER = "chime"

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}


def setup_logging(name: str = ROOT_LOGGER, level: int = None) -> logging.Logger:
    """
    Configure and return a logger with a coloured console handler and a
    rotating file handler.

    Args:
        name: Logger to attach handlers to
        level: Console level (DEBUG when DEBUG_MODE is set, INFO otherwise)

    Returns:
        Configured logger instance
    """
    if level is None:
        level = logging.DEBUG if DEBUG_MODE else logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Calling twice must not duplicate output
    if logger.handlers:
        return logger

    console_handler = colorlog.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s" + LOG_FORMAT, datefmt=LOG_DATE_FORMAT, log_colors=LOG_COLORS
    ))
    logger.addHandler(console_handler)

    file_handler = logging.handlers.RotatingFileHandler(
        LOG_FILE, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(file_handler)

    for quiet in QUIET_LOGGERS:
        logging.getLogger(quiet).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance under the ``chime`` hierarchy.

    Module names such as ``src.reminder.service`` are re-rooted to
    ``chime.reminder.service`` so they inherit the configured handlers.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    if not logging.getLogger(ROOT_LOGGER).handlers:
        setup_logging(ROOT_LOGGER)

    if name.startswith("src."):
        name = f"{ROOT_LOGGER}.{name[len('src.'):]}"
    elif name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"

    return logging.getLogger(name)
