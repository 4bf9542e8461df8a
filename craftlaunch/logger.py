"""
Logging

Unified logging through loguru.
"""

import os
import sys
from typing import Optional

from loguru import logger


def setup_logger(
    level: Optional[str] = None,
    sink=sys.stdout,
    enqueue: bool = True,
    colorize: bool = True,
) -> None:
    """
    Configure the global logger.

    Args:
        level: log level (DEBUG, INFO, WARNING, ERROR)
        sink: output target
        enqueue: route records through a queue (thread and process safe)
        colorize: enable ANSI colors
    """
    if level is None:
        level = "DEBUG" if os.environ.get("CRAFTLAUNCH_DEBUG", "0") == "1" else "INFO"

    logger.remove()

    logger.add(
        sink=sink,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=(level == "DEBUG"),
        diagnose=(level == "DEBUG"),
    )

    if level == "DEBUG":
        logger.debug("DEBUG mode enabled")


__all__ = ["logger", "setup_logger"]
