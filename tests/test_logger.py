"""Tests for logger construction."""

import logging

from runtime import version
from shared.logging.logger import LOG_DIR_ENV, get_logger


def test_loggers_are_cached(monkeypatch):
    monkeypatch.delenv(LOG_DIR_ENV, raising=False)
    first = get_logger("tests.cached")
    assert get_logger("tests.cached") is first
    assert first.name == "chatfeed:tests.cached"
    assert first.propagate is False


def test_console_only_without_log_dir(monkeypatch):
    monkeypatch.delenv(LOG_DIR_ENV, raising=False)
    logger = get_logger("tests.console_only")
    assert not any(isinstance(h, logging.FileHandler) for h in logger.handlers)


def test_file_handler_when_log_dir_set(monkeypatch, tmp_path):
    log_dir = tmp_path / "logs"
    monkeypatch.setenv(LOG_DIR_ENV, str(log_dir))

    logger = get_logger("tests.with_file", runtime="chatfeed-test")
    logger.info("hello file")
    for handler in logger.handlers:
        handler.flush()

    files = list(log_dir.glob("chatfeed-test-*.log"))
    assert len(files) == 1
    assert "hello file" in files[0].read_text(encoding="utf-8")

    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            handler.close()
            logger.removeHandler(handler)


def test_version_metadata():
    assert version.as_dict()["version"] == version.VERSION
    assert version.as_string().startswith(version.PROJECT_NAME)
