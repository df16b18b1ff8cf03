"""Logging for the share pool service: rich console output, daily files and progress helpers.

Records go through a queue to a listener thread so request and job threads
never block on console or file I/O.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import SimpleQueue
from threading import RLock
from typing import TYPE_CHECKING, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install as install_rich_traceback

from .context import ContextFilter, log_context
from .progress import progress_manager
from .timing import timeit

if TYPE_CHECKING:
    from sharepool.core.config import LoggingSettings

__all__ = [
    "configure_logging",
    "init_logging",
    "get_logger",
    "shutdown_logging",
    "log_context",
    "progress_manager",
    "timeit",
]

_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(context)s%(message)s"
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class LoggingConfig:
    app_name: str = "sharepool"
    level: str | int = "INFO"
    log_dir: Optional[Path] = None


_config_lock = RLock()
_config: LoggingConfig | None = None
_listener: QueueListener | None = None
_context_filter = ContextFilter()


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


class DailyFileHandler(logging.FileHandler):
    """Append to ``<prefix>_YYYY_MM_DD.log``, switching files when the day changes."""

    def __init__(self, directory: Path, prefix: str) -> None:
        self.directory = directory
        self.prefix = prefix
        self.directory.mkdir(parents=True, exist_ok=True)
        self._current_date: date = datetime.now().date()
        super().__init__(self._path_for(self._current_date), mode="a", encoding="utf-8")

    def _path_for(self, day: date) -> Path:
        return self.directory / f"{self.prefix}_{day:%Y_%m_%d}.log"

    def emit(self, record: logging.LogRecord) -> None:
        record_date = datetime.fromtimestamp(record.created).date()
        if record_date != self._current_date:
            self._current_date = record_date
            if self.stream:
                self.stream.close()
            self.baseFilename = os.fspath(self._path_for(record_date))
            self.stream = self._open()
        super().emit(record)


def _build_handlers(cfg: LoggingConfig, level: int) -> list[logging.Handler]:
    install_rich_traceback(show_locals=False)
    console = Console(stderr=True)
    progress_manager.use_console(console)

    rich_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_path=False,
        log_time_format=_TIME_FORMAT,
    )
    rich_handler.setFormatter(logging.Formatter("%(context)s%(message)s"))
    handlers: list[logging.Handler] = [rich_handler]

    if cfg.log_dir:
        file_handler = DailyFileHandler(Path(cfg.log_dir), cfg.app_name)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_TIME_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
        handler.addFilter(_context_filter)
    return handlers


def init_logging(
    *,
    app_name: str = "sharepool",
    level: str | int = "INFO",
    log_dir: Optional[Path] = None,
) -> None:
    """Install the console and file handlers behind a queue listener.

    Calling again with the same options does nothing; different options
    stop the running listener and rebuild the handlers.
    """

    global _config, _listener
    cfg = LoggingConfig(app_name=app_name, level=level, log_dir=log_dir)
    with _config_lock:
        if _config == cfg:
            return
        _teardown_locked()
        resolved = _parse_level(cfg.level)

        log_queue: SimpleQueue = SimpleQueue()
        queue_handler = QueueHandler(log_queue)
        queue_handler.setLevel(resolved)
        queue_handler.addFilter(_context_filter)
        root = logging.getLogger()
        root.setLevel(logging.NOTSET)
        root.addHandler(queue_handler)

        _listener = QueueListener(log_queue, *_build_handlers(cfg, resolved), respect_handler_level=True)
        _listener.start()
        _config = cfg


def configure_logging(
    settings: "LoggingSettings",
    *,
    app_name: str = "sharepool",
    level: str | int | None = None,
) -> None:
    """Initialise logging from the process settings; ``level`` overrides ``LOG_LEVEL``."""

    init_logging(
        app_name=app_name,
        level=level or settings.level,
        log_dir=Path(settings.log_dir) if settings.log_dir else None,
    )


def _teardown_locked() -> None:
    global _listener, _config
    if _listener:
        _listener.stop()
    _listener = None
    _config = None
    progress_manager.reset_console()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


def shutdown_logging() -> None:
    """Stop the queue listener and drop all handlers."""

    with _config_lock:
        _teardown_locked()


def get_logger(name: str | None = None) -> logging.Logger:
    # Library use before the app or a script configures logging: console only.
    with _config_lock:
        if _config is None:
            init_logging(level=os.getenv("LOG_LEVEL", "INFO"))
        return logging.getLogger(name or _config.app_name)
