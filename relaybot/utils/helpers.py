"""Small shared helpers."""

import sys
from pathlib import Path

from loguru import logger

from relaybot.config.paths import ProfilePaths
from relaybot.config.schema import LoggingConfig

# Config level names -> loguru level names
_LOG_LEVELS = {
    "fatal": "CRITICAL",
    "error": "ERROR",
    "warn": "WARNING",
    "info": "INFO",
    "debug": "DEBUG",
    "trace": "TRACE",
}


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def setup_logging(config: LoggingConfig, paths: ProfilePaths | None = None, verbose: bool = False) -> None:
    """Configure loguru sinks: stderr plus a log file.

    ``silent`` removes every sink. *verbose* forces debug on stderr.
    """
    logger.remove()
    if config.level == "silent":
        return

    level = "DEBUG" if verbose else _LOG_LEVELS[config.level]
    logger.add(sys.stderr, level=level)

    log_file = Path(config.file).expanduser() if config.file else (paths.log_file if paths else None)
    if log_file:
        ensure_dir(log_file.parent)
        logger.add(log_file, level=_LOG_LEVELS[config.level], rotation="10 MB", retention=3)
