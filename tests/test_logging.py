import logging
from logging.handlers import QueueHandler

from sharepool.core.logger import get_logger, init_logging, shutdown_logging


def _queue_handlers() -> list[logging.Handler]:
    return [handler for handler in logging.getLogger().handlers if isinstance(handler, QueueHandler)]


def test_file_handler_writes_daily_log(tmp_path) -> None:
    init_logging(app_name="sharepool-test", level="INFO", log_dir=tmp_path)
    try:
        get_logger("sharepool.test").info("Batch settled for instrument %s", 3)
        get_logger("sharepool.test").debug("hidden")
    finally:
        shutdown_logging()

    files = list(tmp_path.glob("sharepool-test_*.log"))
    assert len(files) == 1
    content = files[0].read_text(encoding="utf-8")
    assert "Batch settled for instrument 3" in content
    assert "hidden" not in content


def test_repeated_init_keeps_one_queue_handler() -> None:
    try:
        init_logging(level="WARNING")
        init_logging(level="WARNING")
        assert len(_queue_handlers()) == 1
    finally:
        shutdown_logging()
    assert _queue_handlers() == []
