"""Logging configuration for the proxy server.

This module provides centralized logging configuration using Loguru.
It sets up logging to both console and file with proper formatting
and log rotation. Session records carry the client address as the
``client`` extra; records logged outside a session show ``-``.
"""

import sys
from pathlib import Path

from loguru import logger

LOG_DIR = Path.home() / ".socks5-relay" / "logs"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[client]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[client]} | {name}:{function}:{line} - {message}"


def configure_logging(log_file: Path | None = None, *, debug: bool = False) -> Path:
    """Replace loguru's default handler with console and rotating file handlers.

    Args:
        log_file: Log file path, defaults to ``LOG_DIR / "proxy.log"``
        debug: Log DEBUG records to the console as well

    Returns:
        Path: The log file in use
    """
    log_file = log_file or LOG_DIR / "proxy.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.configure(extra={"client": "-"})

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level="DEBUG" if debug else "INFO",
        backtrace=True,
        diagnose=True,
    )

    logger.add(
        log_file,
        rotation="10 MB",
        retention="1 week",
        compression="zip",
        format=FILE_FORMAT,
        level="DEBUG",
        enqueue=True,
        backtrace=True,
        diagnose=True,
    )
    return log_file


__all__ = ["configure_logging", "LOG_DIR", "logger"]
