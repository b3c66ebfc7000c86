"""Tests for configure_logging()."""

import logging

import pytest
import structlog

from account_service.core.logging_config import configure_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    root_level = root.level
    root_handlers = root.handlers[:]
    yield
    structlog.reset_defaults()
    for handler in root.handlers[:]:
        if handler not in root_handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in root_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(root_level)


class TestConfigureLogging:
    """Test configure_logging()."""

    def test_sets_stdlib_root_level(self):
        configure_logging("WARNING")
        assert logging.getLogger().level == logging.WARNING

    def test_filters_structlog_below_level(self, capsys: pytest.CaptureFixture[str]):
        configure_logging("WARNING")
        logger = structlog.get_logger()

        logger.info("database_pool_created")
        logger.warning("storage_error_unexpected", sqlstate="23505")

        out = capsys.readouterr().out
        assert "database_pool_created" not in out
        assert "storage_error_unexpected" in out
        assert "23505" in out

    def test_json_output(self, capsys: pytest.CaptureFixture[str]):
        configure_logging("INFO", use_json=True)
        structlog.get_logger().info("database_pool_disposed")

        out = capsys.readouterr().out
        assert '"event": "database_pool_disposed"' in out
        assert '"level": "info"' in out

    def test_defaults_come_from_settings(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(
            "account_service.core.logging_config.settings.log_level", "ERROR"
        )
        configure_logging()
        assert logging.getLogger().level == logging.ERROR

    def test_rejects_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging("LOUD")
