"""Logging setup for the supervisor process."""

from __future__ import annotations

import logging

from .config import SupervisorConfig


def setup_logging(config: SupervisorConfig) -> logging.Logger:
    """
    Configure process-wide logging.

    Records go to stderr so they land in the container log next to the
    mirrored output of the supervised phases.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=config.log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from libraries
    for logger_name in ("asyncio", "aiohttp.access", "aiohttp.server"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    return logging.getLogger("gateway_supervisor")
