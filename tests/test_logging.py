"""
Tests for logging setup.
"""

import logging

from rich.logging import RichHandler

from driftfix.utils.logging import _parse_level, get_logger, setup_logging, setup_logging_from_config


class TestParseLevel:
    def test_names(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("WARNING") == logging.WARNING

    def test_int_passthrough(self):
        assert _parse_level(15) == 15

    def test_unknown_defaults_to_info(self):
        assert _parse_level("chatty") == logging.INFO


class TestSetupLogging:
    def test_rich_console_handler(self):
        logger = setup_logging("DEBUG")
        assert logger.name == "driftfix"
        assert logger.level == logging.DEBUG
        assert any(isinstance(h, RichHandler) for h in logger.handlers)
        assert logger.propagate is False

    def test_plain_console_handler(self):
        logger = setup_logging(use_rich=False)
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], RichHandler)

    def test_file_handler_writes(self, tmp_path):
        log_file = tmp_path / "logs" / "driftfix.log"
        setup_logging("INFO", log_file=log_file, console_enabled=False)
        get_logger("driftfix.tests").info("migrated site-1")
        for handler in logging.getLogger("driftfix").handlers:
            handler.flush()
        content = log_file.read_text()
        assert "[INFO    ] driftfix.tests: migrated site-1" in content

    def test_from_config_relative_file(self, tmp_path):
        logger = setup_logging_from_config(
            {"logging": {"level": "WARNING", "file": "run.log", "console_enabled": False}}, tmp_path
        )
        assert logger.level == logging.WARNING
        assert (tmp_path / "run.log").exists()

    def test_handlers_replaced_not_accumulated(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1


class TestGetLogger:
    def test_prefixes_name(self):
        assert get_logger("steps").name == "driftfix.steps"
        assert get_logger("driftfix.runner").name == "driftfix.runner"
