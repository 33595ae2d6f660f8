"""Logging setup on top of loguru."""

import sys
from typing import Any

from loguru import logger

PACKAGE_PREFIX = "folioscope."


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
) -> Any:
    """Route loguru output to stderr.

    Text output shows the emitting component next to the level. JSON output
    serializes the whole record, component included under ``extra``.
    """
    logger.remove()
    logger.configure(extra={"component": "-"})

    if json_format:
        logger.add(sys.stderr, format="{message}", level=level, serialize=True)
    else:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{extra[component]}</cyan> | "
                "<level>{message}</level>"
            ),
            level=level,
            colorize=True,
        )

    return logger


def component_name(module: str) -> str:
    """Short component label for a module path, e.g. ``storage.cache``."""
    if module.startswith(PACKAGE_PREFIX):
        return module[len(PACKAGE_PREFIX) :]
    return module


def get_logger(name: str) -> Any:
    """Logger whose records carry the component of module ``name``."""
    return logger.bind(component=component_name(name))
