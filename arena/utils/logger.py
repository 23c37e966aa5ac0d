"""Loguru logger configuration with rotation and structured logging."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from config.settings import settings


_configured = False


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = True,
) -> None:
    """
    Replace loguru's default handler with console and rotating file sinks.

    Safe to call more than once; only the first call installs sinks.

    Args:
        log_level: Minimum log level (defaults to settings.LOG_LEVEL)
        log_dir: Directory for log files (defaults to settings.LOG_DIR)
        enable_console: Enable console output
        enable_file: Enable file output
    """
    global _configured
    if _configured:
        return

    level = (log_level or settings.LOG_LEVEL).upper()
    directory = Path(log_dir or settings.LOG_DIR)

    logger.remove()
    logger.configure(extra={"module": "arena"})

    if enable_console:
        logger.add(
            sys.stdout,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{extra[module]: <10}</cyan> | "
                "<level>{message}</level>"
            ),
            level=level,
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    if enable_file:
        directory.mkdir(parents=True, exist_ok=True)

        # Main log with rotation
        logger.add(
            directory / "arena.log",
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[module]: <10} | "
                "{name}:{function}:{line} | "
                "{message}"
            ),
            level=level,
            rotation="50 MB",
            retention="14 days",
            compression="zip",
            enqueue=True,  # Scheduler threads log concurrently
        )

        # Error-only log file
        logger.add(
            directory / "errors.log",
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[module]: <10} | "
                "{name}:{function}:{line} | "
                "{message} | "
                "{exception}"
            ),
            level="ERROR",
            rotation="20 MB",
            retention="60 days",
            compression="zip",
            backtrace=True,
            enqueue=True,
        )

    _configured = True
    logger.info(f"Logging configured (level={level}, dir={directory})")

