"""
D2D Neighborhood Atlas - Logging Configuration

Modules log through ``get_logger(__name__)`` and never configure handlers.
A runner calls ``setup_logging`` once; the handlers go on the project's
package loggers (``canvass``, ``config``) so every module logger below them
emits, while the root logger and third-party libraries are left untouched.

Output: JSON lines in production, readable lines elsewhere, plus a dated
file per run under ``LOG_DIR``.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List

from pythonjsonlogger import jsonlogger

from config.settings import get_settings

settings = get_settings()

PACKAGE_LOGGERS = ("canvass", "config")


def _build_formatter() -> logging.Formatter:
    if settings.ENVIRONMENT == "production":
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s", datefmt="%Y-%m-%dT%H:%M:%S"
        )
    return logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    )


def _build_handlers(run_name: str) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_DIR:
        log_file = Path(settings.LOG_DIR) / f"{run_name}_{datetime.now().strftime('%Y%m%d')}.log"
        handlers.append(logging.FileHandler(log_file))

    formatter = _build_formatter()
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(run_name: str = "neighborhood_atlas") -> logging.Logger:
    """
    Attach output handlers to the project's package loggers.

    Calling it again replaces (and closes) the handlers of the previous call.

    Args:
        run_name: Name of the run; used for the log file and the returned logger

    Returns:
        Logger for the run itself (``canvass.<run_name>``)
    """
    level = getattr(logging, settings.LOG_LEVEL)
    handlers = _build_handlers(run_name)

    previous = set()
    for name in PACKAGE_LOGGERS:
        package_logger = logging.getLogger(name)
        previous.update(package_logger.handlers)
        package_logger.handlers = list(handlers)
        package_logger.setLevel(level)
        package_logger.propagate = False

    for handler in previous:
        handler.close()

    return get_logger(f"canvass.{run_name}")


def get_logger(module_name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        module_name: Name of the module (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(module_name)
