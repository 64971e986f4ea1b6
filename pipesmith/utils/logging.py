"""Logging setup using Loguru."""

import sys
from loguru import logger

from pipesmith.config import settings


def setup_logging() -> None:
    """
    Configure the Loguru logger for pipesmith.

    DEBUG or VERBOSE switches the level to DEBUG (command lines, Slack
    payloads); otherwise INFO. Pipe output goes to stderr so stdout stays
    free for command results.
    """
    logger.remove()

    log_level = "DEBUG" if (settings.VERBOSE or settings.DEBUG) else "INFO"

    logger.add(
        sys.stderr,
        level=log_level,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    logger.debug("pipesmith logging initialised (level={})", log_level)
