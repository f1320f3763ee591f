from __future__ import annotations

import logging
import sys

from ircfw.core.logger import configure_structlog


def configure_logging(level: str = "WARNING", fmt: str = "console") -> None:
    log_level = getattr(logging, level.upper(), logging.WARNING)

    # stdout carries the run transcript, so log records go to stderr
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
        force=True,
    )
    configure_structlog(fmt)
