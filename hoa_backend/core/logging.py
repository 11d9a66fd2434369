"""Logging configuration for the API server.

Output goes to stdout and, when LOG_FILE is set, to a file as well.
Level comes from LOG_LEVEL (default INFO).
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from hoa_backend.core.config import settings

# Map string level names to logging constants
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level(level_name: Optional[str] = None) -> int:
    """Resolve a level name (default: settings.log_level) to a logging constant, INFO if unknown."""
    level_str = (level_name or settings.log_level or "INFO").upper()
    return LOG_LEVEL_MAP.get(level_str, logging.INFO)


def setup_logging(log_file: Optional[str] = None, level_name: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        log_file: Path to a log file; falls back to settings.log_file, no file handler if neither is set
        level_name: Level override; falls back to settings.log_level
    """
    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    log_level = get_log_level(level_name)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove any existing handlers to avoid duplicates on app re-creation
    root_logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    log_file = log_file or settings.log_file
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
