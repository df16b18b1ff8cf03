"""Shared logging entrypoint used as ``from sharepool.core.logger import get_logger``."""
from __future__ import annotations

from .log import (
    configure_logging,
    get_logger,
    init_logging,
    log_context,
    progress_manager,
    shutdown_logging,
    timeit,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "init_logging",
    "shutdown_logging",
    "log_context",
    "progress_manager",
    "timeit",
]
