import json
import logging
from logging.handlers import RotatingFileHandler

import pytest

from starfire.accumulator import Bucket
from starfire.logging_utils import (
    JsonFormatter,
    configure_runtime_logging,
    serialize_for_log,
    warn_once_per,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in original_handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in original_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(original_level)


def test_configure_runtime_logging_installs_rotating_handler(tmp_path, restore_root_logger):
    log_file = tmp_path / "logs" / "engine.log"
    path = configure_runtime_logging(
        level="DEBUG", console=False, logfile=log_file, max_bytes=1024, backup_count=2
    )
    assert path == log_file

    handlers = [h for h in restore_root_logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(handlers) == 1
    assert handlers[0].maxBytes == 1024
    assert handlers[0].backupCount == 2

    logging.getLogger("starfire.test").info("hello %s", "world")
    handlers[0].flush()
    assert "hello world" in log_file.read_text()


def test_configure_twice_replaces_own_handlers(tmp_path, restore_root_logger):
    configure_runtime_logging(console=True, logfile=tmp_path / "a.log")
    configure_runtime_logging(console=True, logfile=tmp_path / "b.log")
    own = [h for h in restore_root_logger.handlers if getattr(h, "_starfire_handler", False)]
    assert len(own) == 2
    files = [h.baseFilename for h in own if isinstance(h, RotatingFileHandler)]
    assert files == [str(tmp_path / "b.log")]


def test_empty_logfile_disables_file_handler(restore_root_logger):
    assert configure_runtime_logging(console=False, logfile="") is None
    assert not any(
        isinstance(h, RotatingFileHandler) for h in restore_root_logger.handlers
    )


def test_level_from_environment(monkeypatch, restore_root_logger):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    configure_runtime_logging(console=False, logfile="")
    assert restore_root_logger.level == logging.WARNING


def test_json_formatter_includes_extras():
    record = logging.LogRecord("starfire.engine", logging.INFO, __file__, 12, "claimed %s", (5,), None)
    record.bucket = "burn"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["msg"] == "claimed 5"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "starfire.engine"
    assert payload["line"] == 12
    assert payload["bucket"] == "burn"
    assert payload["ts"].endswith("Z")


def test_warn_once_per_suppresses_repeats(caplog):
    logger = logging.getLogger("starfire.test.warn")
    with caplog.at_level(logging.WARNING):
        assert warn_once_per(1.0, "key", "first %s", 1, logger=logger) is True
        assert warn_once_per(1.0, "key", "second", logger=logger) is False
        assert warn_once_per(1.0, "other", "third", logger=logger) is True
        assert warn_once_per(0, "key", "fourth", logger=logger) is True
    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["first 1", "third", "fourth"]


def test_serialize_for_log_normalizes_values():
    text = serialize_for_log(
        {Bucket.BURN: {"sig": "x" * 10, "raw": b"abc"}, "items": (1, 2.5, None)},
        max_string=4,
    )
    data = json.loads(text)
    assert data["burn"]["sig"] == "xxxx...(10 chars)"
    assert data["burn"]["raw"] == "<3 bytes>"
    assert data["items"] == [1, 2.5, None]
