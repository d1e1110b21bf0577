import logging

import pytest

from meetlogger.services.logging_setup import RedactApiKeyFilter, configure_logging, parse_level


def _record(msg, *args):
    return logging.LogRecord("meetlogger.test", logging.WARNING, __file__, 1, msg, args, None)


def test_redact_filter_masks_key_param():
    record = _record("GET %s failed", "https://host/v1/models?key=AIzaSecret&pageSize=50")
    assert RedactApiKeyFilter().filter(record)
    assert record.getMessage() == "GET https://host/v1/models?key=***&pageSize=50 failed"


def test_redact_filter_leaves_other_messages_alone():
    record = _record("Summary saved: id=%s", "abc")
    RedactApiKeyFilter().filter(record)
    assert record.args == ("abc",)


def test_parse_level():
    assert parse_level("debug") == logging.DEBUG
    assert parse_level("nonsense") == logging.INFO
    assert parse_level(None, logging.WARNING) == logging.WARNING


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True


def test_configure_logging_writes_rotating_file(tmp_path, restore_root_logger):
    log_path = configure_logging(str(tmp_path / "logs"), console_level=logging.WARNING)
    logging.getLogger("meetlogger.test").info("hello %s", "there")
    for handler in logging.getLogger().handlers:
        handler.flush()
    with open(log_path, encoding="utf-8") as f:
        content = f.read()
    assert "[meetlogger.test] hello there" in content
    names = {h.name for h in logging.getLogger().handlers}
    assert names == {"meetlogger_file", "meetlogger_stream"}
