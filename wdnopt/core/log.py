from __future__ import annotations

import logging
from typing import Union

PACKAGE_LOGGER = "wdnopt"


def set_log_level(level: Union[int, str]) -> None:
    """Level of the package logger (handlers are left to the application)."""
    if isinstance(level, str):
        level = level.strip().upper()
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)


def silence() -> None:
    """Only error reports are emitted from now on."""
    set_log_level(logging.ERROR)
