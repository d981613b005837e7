# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Console logging setup."""

import logging

from rich.console import Console
from rich.logging import RichHandler

from llmspeed.common.environment import Environment

_PACKAGE_LOGGER = "llmspeed"


def setup_rich_logging(level: str | int | None = None, console: Console | None = None) -> None:
    """Attach a RichHandler to the package logger.

    Calling this more than once replaces the previously installed handler
    instead of stacking duplicates.

    Args:
        level: Log level name or number. Defaults to ``Environment.LOGGING.LEVEL``.
        console: Console to log to. Defaults to a stderr console.
    """
    level = level if level is not None else Environment.LOGGING.LEVEL
    if isinstance(level, str):
        level = level.upper()

    logger = logging.getLogger(_PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=Environment.LOGGING.RICH_TRACEBACKS,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
