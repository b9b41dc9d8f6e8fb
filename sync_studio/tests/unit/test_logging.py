"""Tests for structured logging."""
import logging

import pytest

from sync_studio.services.shared.config import Config
from sync_studio.services.shared.logging import (
    get_logger,
    setup_logging,
    setup_logging_from_config,
)


class TestGetLogger:
    def test_returns_logger(self):
        assert isinstance(get_logger("test.module"), logging.Logger)

    def test_short_name_is_namespaced(self):
        assert get_logger("sync.client").name == "sync_studio.sync.client"

    def test_full_name_used_as_is(self):
        assert get_logger("sync_studio.routers.sync").name == "sync_studio.routers.sync"

    def test_same_name_returns_same_logger(self):
        assert get_logger("test.same") is get_logger("test.same")


class TestSetupLogging:
    def test_setup_with_level(self):
        setup_logging(level="DEBUG")
        assert logging.getLogger("sync_studio").level == logging.DEBUG

    def test_level_is_case_insensitive(self):
        setup_logging(level="warning")
        assert logging.getLogger("sync_studio").level == logging.WARNING

    def test_setup_file_handler(self, tmp_dir):
        log_file = tmp_dir / "logs" / "test.log"
        setup_logging(level="INFO", log_file=str(log_file))
        get_logger("test_file").info("test message")
        for handler in logging.getLogger("sync_studio").handlers:
            handler.flush()
        assert log_file.exists()
        assert "test message" in log_file.read_text()

    def test_repeat_setup_does_not_stack_handlers(self):
        setup_logging(level="INFO")
        setup_logging(level="INFO")
        assert len(logging.getLogger("sync_studio").handlers) == 1

    def test_http_libraries_quieted(self):
        setup_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_invalid_level_raises(self):
        with pytest.raises(ValueError):
            setup_logging(level="INVALID_LEVEL")


class TestSetupFromConfig:
    def test_uses_yaml_level(self, sample_settings, monkeypatch):
        monkeypatch.delenv("SYNC_STUDIO_LOG_LEVEL", raising=False)
        setup_logging_from_config(Config(str(sample_settings)))
        assert logging.getLogger("sync_studio").level == logging.DEBUG

    def test_env_level_wins(self, sample_settings, monkeypatch):
        monkeypatch.setenv("SYNC_STUDIO_LOG_LEVEL", "ERROR")
        setup_logging_from_config(Config(str(sample_settings)))
        assert logging.getLogger("sync_studio").level == logging.ERROR
