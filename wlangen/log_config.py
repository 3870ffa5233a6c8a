"""Logging configuration for wlangen."""

import logging
import sys

APP_LOGGER_NAME = "wlangen.apps"


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name.

    Args:
        name: Logger name, typically __name__ from calling module.

    Returns:
        Configured logger instance.
    """
    return logging.getLogger(name)


def set_global_log_level(level: int) -> None:
    """Set the global logging level for all wlangen loggers.

    Args:
        level: Logging level (e.g., logging.DEBUG, logging.INFO).
    """
    # Configure root logger
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )

    # Set level for wlangen package loggers
    wlangen_logger = logging.getLogger("wlangen")
    wlangen_logger.setLevel(level)


def enable_application_logging(enabled: bool) -> None:
    """Toggle per-packet application log lines (echo client/server events).

    Application loggers stay quiet unless explicitly enabled, independent of
    the package level, so a verbose scenario does not require ``-v``.

    Args:
        enabled: True to emit INFO-level application events.
    """
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(logging.INFO if enabled else logging.WARNING)
