"""Per-component loggers under the ``leaselock`` namespace."""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

from rich.logging import RichHandler

from .env import env_flag


ROOT_LOGGER = "leaselock"
PLAIN_LOGS_VARIABLE = "LEASELOCK_PLAIN_LOGS"
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"


def _build_handler(level: int, rich: bool) -> logging.Handler:
    if rich:
        handler: logging.Handler = RichHandler(
            level=level,
            rich_tracebacks=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def get_logger(component: str, level: int = logging.INFO, *, rich: Optional[bool] = None) -> logging.Logger:
    """Return the logger for ``component``; the shared root handler is installed once.

    Component loggers propagate to ``leaselock`` so a single ``set_level`` call
    governs every store, sweeper and lock.
    """
    name = component if component.startswith(ROOT_LOGGER) else f"{ROOT_LOGGER}.{component}"
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        if rich is None:
            rich = not env_flag(PLAIN_LOGS_VARIABLE)
        root.setLevel(level)
        root.addHandler(_build_handler(level, rich))
        root.propagate = False
    return logging.getLogger(name)


def set_level(level: Union[str, int]) -> None:
    numeric = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(numeric, int):
        raise ValueError(f"Invalid log level: {level}")
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(numeric)
    for handler in root.handlers:
        handler.setLevel(numeric)
