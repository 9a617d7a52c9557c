"""
Logging configuration for the tracker.
Uses loguru for enhanced logging capabilities.

Every record carries a ``conn`` extra: the short id of the viewer connection
it concerns, or ``SERVER_CONTEXT`` for service-wide messages.
"""

import sys
from pathlib import Path
from loguru import logger

from tracker.config import TrackerConfig

SERVER_CONTEXT = "server"


def _is_connection_record(record) -> bool:
    return record["extra"].get("conn", SERVER_CONTEXT) != SERVER_CONTEXT


def setup_logging(config: TrackerConfig, console: bool = True) -> None:
    """
    Configure logging for the tracker.

    Sinks:
    - console (optional), coloured
    - ``LOG_FILE``: everything at ``LOG_LEVEL``
    - ``connections.log``: only records bound to a viewer connection
    - ``error.log``: errors only

    Args:
        config: Tracker configuration
        console: Whether to output to console
    """

    # Remove default handler
    logger.remove()
    logger.configure(extra={"conn": SERVER_CONTEXT})

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<magenta>{extra[conn]: <8}</magenta> | "
        "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    file_format = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[conn]: <8} | {name}:{function}:{line} | {message}"

    if console:
        logger.add(
            sys.stdout,
            format=log_format,
            level=config.log_level,
            colorize=True,
        )

    log_path = Path(config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(log_path),
        format=file_format,
        level=config.log_level,
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        enqueue=True,  # Thread-safe
    )

    # Live viewer activity: joins, rejected events, disconnects
    logger.add(
        str(log_path.parent / "connections.log"),
        format=file_format,
        level=config.log_level,
        filter=_is_connection_record,
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
    )

    logger.add(
        str(log_path.parent / "error.log"),
        format=file_format,
        level="ERROR",
        rotation="10 MB",
        retention="60 days",
        compression="zip",
        enqueue=True,
    )

    logger.info(f"Logging initialized - Level: {config.log_level}, File: {log_path}")


class ConnectionLogger:
    """Logger bound to a single viewer connection."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        self._logger = logger.bind(conn=connection_id[:8])

    def info(self, message: str, **kwargs):
        self._logger.info(message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._logger.debug(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self._logger.error(message, **kwargs)

    def exception(self, message: str, **kwargs):
        self._logger.exception(message, **kwargs)
