"""Tests for logging setup."""
import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import MagicMock, patch

import pytest

from revcycle.utils.logger import NOISY_LOGGERS, configure_logging, get_logger


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.mark.unit
class TestConfigureLogging:
    def test_default_writes_to_stdout(self):
        with patch("revcycle.utils.logger.structlog") as mock_structlog:
            configure_logging()

        mock_structlog.configure.assert_called_once()
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_json_renderer_selected(self):
        with patch("revcycle.utils.logger.structlog") as mock_structlog:
            configure_logging(log_format="json")

        processors = mock_structlog.configure.call_args.kwargs["processors"]
        assert processors[-1] is mock_structlog.processors.JSONRenderer.return_value

    def test_console_renderer_selected(self):
        with patch("revcycle.utils.logger.structlog") as mock_structlog:
            configure_logging(log_format="console")

        processors = mock_structlog.configure.call_args.kwargs["processors"]
        assert processors[-1] is mock_structlog.dev.ConsoleRenderer.return_value

    def test_rotating_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        with patch("revcycle.utils.logger.structlog"):
            configure_logging(log_level="warning", log_file="revcycle.log", log_dir=str(tmp_path / "logs"))

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert [type(h) for h in root.handlers] == [RotatingFileHandler]
        assert (tmp_path / "logs").is_dir()
        root.handlers[0].close()

    def test_unknown_level_falls_back_to_info(self):
        with patch("revcycle.utils.logger.structlog"):
            configure_logging(log_level="chatty")

        assert logging.getLogger().level == logging.INFO

    def test_noisy_libraries_quieted(self):
        with patch("revcycle.utils.logger.structlog"):
            configure_logging(log_level="DEBUG")

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


@pytest.mark.unit
def test_get_logger_delegates_to_structlog():
    with patch("revcycle.utils.logger.structlog") as mock_structlog:
        mock_structlog.get_logger.return_value = MagicMock()
        logger = get_logger("revcycle.test")

    mock_structlog.get_logger.assert_called_once_with("revcycle.test")
    assert logger is mock_structlog.get_logger.return_value
