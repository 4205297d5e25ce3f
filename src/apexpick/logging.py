"""Logging helpers for the pipeline."""

from __future__ import annotations

import logging
from typing import Iterable


def configure_logging(
    level: int | str = logging.INFO,
    handlers: Iterable[logging.Handler] | None = None,
) -> None:
    """Configure root logging with the project's line format.

    Adapter failures surface as warnings naming the source, so a consistent
    format makes degraded providers easy to spot in long-running warm-up
    loops.  ``level`` accepts either a number or a name such as ``"DEBUG"``.
    """

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=list(handlers) if handlers else None,
    )
