"""Logging configuration utilities."""

import logging
from pathlib import Path
from typing import List, Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    quiet_loggers: Optional[List[str]] = None,
    console: bool = True,
) -> None:
    """Configure root logging for an AgriTwin process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional file to mirror log output into.
        quiet_loggers: Extra logger names to hold at WARNING.
        console: Log to stderr as well.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler()] if console else []
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=log_level, format=DEFAULT_FORMAT, handlers=handlers)

    # aiohttp logs every request on the access logger; paho logs each packet
    quiet = ["aiohttp.access", "asyncio", "paho"] + (quiet_loggers or [])
    for logger_name in quiet:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
