"""Logging setup based on loguru."""

import sys
from typing import Optional

from loguru import logger


def setup_logger(level: str = "WARNING", log_file: Optional[str] = None) -> None:
    """Replace loguru's default sink with the CLI's stderr sink (and an optional file)."""
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | "
               "<level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
               "<level>{message}</level>",
        level=level.upper(),
        colorize=True,
    )

    if log_file:
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
            level="DEBUG",
            rotation="1 MB",
            retention=5,
            encoding="utf-8",
        )
