# vortex/log_config.py
"""Logging configuration for the vortex library using Loguru.

Every vortex module logs through the shared Loguru ``logger`` re-exported
here: request dispatch and responses at DEBUG, header dumps at TRACE, retries
and ignored request bodies at WARNING, transport failures at ERROR. Loguru
records the emitting module in ``record["name"]`` (``vortex.client``,
``vortex.form``, ...), which ``configure_logging`` can filter on. The library
itself never calls it; applications opt in.
"""

import sys

from loguru import logger

__all__ = ["LOG_FORMAT", "configure_logging", "logger"]

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def configure_logging(level: str = "INFO", sink=sys.stderr, only_vortex: bool = False):
    """
    Configures Loguru logger.

    Removes default handlers and adds a new one with the specified level and sink.

    Args:
        level: The minimum logging level (e.g., "TRACE", "DEBUG", "WARNING").
        sink: The output sink (e.g., sys.stderr, "vortex.log").
        only_vortex: If True, the sink only receives records emitted by
            vortex modules, so an application's own Loguru messages are not
            mixed into it.
    """
    logger.remove()
    logger.add(
        sink,
        level=level.upper(),
        format=LOG_FORMAT,
        filter="vortex" if only_vortex else None,
        colorize=sink is sys.stderr,
        backtrace=True,
        diagnose=True,
    )
    logger.info(
        f"Loguru logger configured with level={level.upper()} writing to {sink}"
    )
