"""
Logging helpers for the benchmark harness.
"""

import logging
import os
from datetime import datetime
from typing import Optional

from rvmbench.errors import ConfigurationError

PACKAGE_LOGGER = "rvmbench"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_log_file() -> str:
    os.makedirs("logs", exist_ok=True)
    return datetime.now().strftime("logs/rvmbench_%Y%m%d_%H%M%S.log")


def setup_logging(
    log_level: str = "INFO",
    log_to_file: bool = False,
    log_file_path: Optional[str] = None,
    enable_console: bool = True,
    enabled: bool = False,
) -> logging.Logger:
    """
    Configure the ``rvmbench`` logger for an application run.

    Only the package logger is touched; the root logger and other libraries
    keep their configuration. With ``enabled=False`` the package stays silent,
    which is the library default.

    Args:
        log_level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL.
        log_to_file: Also write records to ``log_file_path``.
        log_file_path: Log file; defaults to ``logs/rvmbench_<timestamp>.log``.
        enable_console: Attach a stderr handler.
        enabled: Turn package logging on.

    Raises:
        ConfigurationError: If ``log_level`` is not a known level name.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    if not enabled:
        package_logger.disabled = True
        return package_logger

    level = str(log_level).upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"Unknown log level '{log_level}', expected one of {LOG_LEVELS}")

    package_logger.disabled = False
    package_logger.setLevel(level)
    package_logger.propagate = False

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = []
    if enable_console:
        handlers.append(logging.StreamHandler())
    if log_to_file:
        log_file_path = log_file_path or _default_log_file()
        handlers.append(logging.FileHandler(log_file_path))
    for handler in handlers:
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    package_logger.info("rvmbench logging initialized - Level: %s", level)
    if log_to_file:
        package_logger.info("Log file: %s", log_file_path)
    return package_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Logger for a module of the package.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.debug("Iteration 3/10: 4.12 ms")  # Only shows if DEBUG enabled
    """
    return logging.getLogger(name or PACKAGE_LOGGER)
