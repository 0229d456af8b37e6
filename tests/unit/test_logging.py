"""Unit tests for structlog setup."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import pytest
import structlog

from school_explorer.config import get_settings
from school_explorer import __version__
from school_explorer.logging import (
    MAX_LOGGED_VALUE_LENGTH,
    add_service_context,
    clip_long_values,
    get_logger,
    setup_logging,
)


@pytest.fixture
def restore_logging():
    """Undo handler and structlog changes made by setup_logging."""
    handlers = list(logging.root.handlers)
    yield
    for handler in logging.root.handlers:
        if handler not in handlers:
            logging.root.removeHandler(handler)
            handler.close()
    structlog.reset_defaults()
    get_settings.cache_clear()


def test_console_only(restore_logging, monkeypatch):
    monkeypatch.setenv("LOG_TO_FILE", "false")
    get_settings.cache_clear()
    setup_logging()
    assert not any(isinstance(h, RotatingFileHandler) for h in logging.root.handlers)
    assert logging.getLogger("httpx").level == logging.WARNING


def test_file_logging(restore_logging, monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_TO_FILE", "true")
    monkeypatch.setenv("LOG_DIRECTORY", str(tmp_path / "logs"))
    get_settings.cache_clear()
    setup_logging()

    file_handlers = [h for h in logging.root.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert (tmp_path / "logs").is_dir()


def test_get_logger_accepts_key_values(restore_logging):
    get_logger("school_explorer.test").info("test_event", answer=42)


def test_setup_installs_project_processors(restore_logging, monkeypatch):
    monkeypatch.setenv("LOG_TO_FILE", "false")
    get_settings.cache_clear()
    setup_logging()
    processors = structlog.get_config()["processors"]
    assert add_service_context in processors
    assert clip_long_values in processors


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


class TestAddServiceContext:
    def test_adds_service_and_version(self):
        event = add_service_context(None, "info", {"event": "chat_started"})
        assert event == {
            "event": "chat_started",
            "service": "school_explorer",
            "version": __version__,
        }

    def test_explicit_values_kept(self):
        event = add_service_context(None, "info", {"event": "x", "service": "worker"})
        assert event["service"] == "worker"


class TestClipLongValues:
    def test_long_user_text_clipped(self):
        query = "q" * (MAX_LOGGED_VALUE_LENGTH + 50)
        event = clip_long_values(None, "info", {"event": "flag_rejected", "error": query})
        assert event["error"] == "q" * MAX_LOGGED_VALUE_LENGTH + f"... ({len(query)} chars)"

    def test_short_and_non_string_values_untouched(self):
        original = {"event": "x", "identity": "203.0.113.7", "tokens": 10**12}
        assert clip_long_values(None, "info", dict(original)) == original

    def test_event_and_exception_never_clipped(self):
        long_text = "e" * (MAX_LOGGED_VALUE_LENGTH * 2)
        event = clip_long_values(None, "error", {"event": long_text, "exception": long_text})
        assert event["event"] == long_text
        assert event["exception"] == long_text
