"""
Unit tests for logging configuration.
"""

import logging

from rich.logging import RichHandler

from asmgr.logging_config import (
    get_logger,
    get_structured_logger,
    setup_cli_logging,
    setup_file_logging,
    setup_logging,
)


class TestGetLogger:
    """Tests for get_logger"""

    def test_prefixes_component_name(self):
        assert get_logger("storage").name == "asmgr.storage"

    def test_module_name_not_doubled(self):
        assert get_logger("asmgr.launcher").name == "asmgr.launcher"


class TestSetupLogging:
    """Tests for setup_logging and its wrappers"""

    def test_rich_console_handler(self):
        logger = setup_logging(level=logging.INFO)

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)
        assert logger.propagate is False

    def test_repeated_calls_do_not_duplicate(self):
        setup_logging()
        logger = setup_logging()

        assert len(logger.handlers) == 1

    def test_plain_stream_handler(self):
        logger = setup_logging(rich_console=False)

        assert type(logger.handlers[0]) is logging.StreamHandler

    def test_cli_logging_levels(self):
        assert setup_cli_logging().level == logging.WARNING
        assert setup_cli_logging(verbose=True).level == logging.DEBUG

    def test_file_logging_writes(self, isolated_config_root):
        logger = setup_file_logging()
        get_logger("test").info("hello file")
        for handler in logger.handlers:
            handler.flush()

        content = (isolated_config_root / "asmgr.log").read_text()
        assert "hello file" in content
        assert not any(isinstance(h, RichHandler) for h in logger.handlers)


class TestStructuredLogger:
    """Tests for StructuredLogger"""

    def test_appends_context(self, caplog):
        log = get_structured_logger("launcher", instance_id="01H")
        logging.getLogger("asmgr").propagate = True

        with caplog.at_level(logging.INFO, logger="asmgr"):
            log.with_context(window=2).info("started", agent="claude")

        assert "started instance_id=01H window=2 agent=claude" in caplog.text

    def test_without_context_message_unchanged(self, caplog):
        logging.getLogger("asmgr").propagate = True

        with caplog.at_level(logging.INFO, logger="asmgr"):
            get_structured_logger("launcher").info("plain")

        assert "plain" in caplog.text
