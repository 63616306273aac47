"""
Logging setup and the info/warning/fatal emitters.

Records below WARNING are rendered on stdout, warnings and errors on
stderr, and everything is mirrored to a log file.
"""

import logging
import os
from pathlib import Path
from typing import NoReturn, Optional, Union

from rich.logging import RichHandler

from workstation_setup import LOGGER_NAME
from workstation_setup.errors import ProvisioningError
from workstation_setup.ui import console, err_console

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _MaxLevelFilter(logging.Filter):
    """Pass only records strictly below ``level``."""

    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _rich_handler(target, level: int) -> RichHandler:
    handler = RichHandler(
        console=target,
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_path=False,
        log_time_format=f"[{DATE_FORMAT}]",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def setup_logger(
    log_file: Optional[Union[str, Path]] = None, verbose: bool = False
) -> logging.Logger:
    """
    Configure the application logger with Rich console handlers and
    persistent file logging.

    Args:
        log_file: Path to the log file, or None for console-only logging
        verbose: Show DEBUG records (executed commands) on the console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    stdout_handler = _rich_handler(console, logging.DEBUG if verbose else logging.INFO)
    stdout_handler.addFilter(_MaxLevelFilter(logging.WARNING))
    logger.addHandler(stdout_handler)
    logger.addHandler(_rich_handler(err_console, logging.WARNING))

    if log_file is not None:
        log_file = Path(log_file)
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
            logger.addHandler(file_handler)
            os.chmod(str(log_file), 0o600)
        except OSError as e:
            logger.warning(f"Could not set up file logging to {log_file}: {e}")

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the application logger or one of its children."""
    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)


def info(message: str) -> None:
    get_logger().info(message)


def warn(message: str) -> None:
    get_logger().warning(message)


def fatal(
    message: str, exit_code: int = 1, logger: Optional[logging.Logger] = None
) -> NoReturn:
    """Log ``message`` as an error and abort the run."""
    (logger or get_logger()).error(message)
    raise ProvisioningError(message, exit_code)
