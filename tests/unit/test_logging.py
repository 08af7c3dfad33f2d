#!/usr/bin/env python3
"""
Logging Tests for PiRSS
=======================

Context binding, formatter output, handler setup and operation timing.
"""

import asyncio
import io
import json
import logging

import pytest

from pirss.config.settings import LoggingSettings
from pirss.utils.logging import (
    ROOT_LOGGER_NAME,
    ConsoleFormatter,
    JSONLineFormatter,
    OperationTimer,
    configure_application_logging,
    get_logger_for_component,
)


@pytest.fixture
def restore_root_logger():
    """Undo handler and level changes made to the ``pirss`` logger."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def capture(logger, formatter):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    logger.logger.addHandler(handler)
    logger.logger.setLevel(logging.DEBUG)
    return stream, handler


class TestComponentLogger:
    """Test context binding."""

    def test_component_logger_name_and_context(self):
        logger = get_logger_for_component("cache", feed_id="sspai", article_url=None)

        assert logger.logger.name == "pirss.cache"
        assert logger.extra == {"component": "cache", "feed_id": "sspai"}

    def test_bind_leaves_parent_untouched(self):
        parent = get_logger_for_component("feed_generator", feed_id="sspai")

        child = parent.bind(article_url="https://sspai.com/post/1")

        assert child.extra == {
            "component": "feed_generator",
            "feed_id": "sspai",
            "article_url": "https://sspai.com/post/1",
        }
        assert "article_url" not in parent.extra
        assert child.logger is parent.logger


class TestFormatters:
    """Test console and JSON rendering of context fields."""

    def test_json_lines_lift_context_to_top_level(self):
        logger = get_logger_for_component("json_check", feed_id="sspai")
        stream, handler = capture(logger, JSONLineFormatter())
        try:
            logger.bind(article_url="https://sspai.com/post/1").warning("Failed to fetch article")
        finally:
            logger.logger.removeHandler(handler)

        line = json.loads(stream.getvalue())
        assert line["level"] == "WARNING"
        assert line["logger"] == "pirss.json_check"
        assert line["message"] == "Failed to fetch article"
        assert line["component"] == "json_check"
        assert line["feed_id"] == "sspai"
        assert line["article_url"] == "https://sspai.com/post/1"

    def test_json_line_includes_exception(self):
        logger = get_logger_for_component("json_error")
        stream, handler = capture(logger, JSONLineFormatter())
        try:
            try:
                raise ValueError("broken page")
            except ValueError:
                logger.error("Unexpected error", exc_info=True)
        finally:
            logger.logger.removeHandler(handler)

        line = json.loads(stream.getvalue())
        assert "ValueError: broken page" in line["exception"]

    def test_console_tag_shows_context_without_component(self):
        record = logging.makeLogRecord({
            "name": "pirss.scheduler",
            "levelname": "INFO",
            "msg": "Primary feed cache updated",
            "component": "scheduler",
            "feed_id": "sspai",
        })

        line = ConsoleFormatter(color=False).format(record)

        assert line.endswith("pirss.scheduler [feed_id=sspai] - Primary feed cache updated")
        assert "component=" not in line
        assert "\033[" not in line

    def test_console_without_context_has_no_tag(self):
        record = logging.makeLogRecord({"name": "pirss.web", "levelname": "INFO", "msg": "Shut down cleanly"})

        assert ConsoleFormatter().format(record).endswith("pirss.web - Shut down cleanly")

    def test_console_color_only_wraps_level(self):
        record = logging.makeLogRecord({"name": "pirss.web", "levelname": "ERROR", "msg": "boom"})

        line = ConsoleFormatter(color=True).format(record)

        assert ConsoleFormatter.LEVEL_COLORS["ERROR"] in line
        assert line.endswith("pirss.web - boom")


class TestConfigureApplicationLogging:
    """Test handler installation from the logging settings section."""

    def test_file_handler_writes_json_lines(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "logs" / "pirss.log"
        settings = LoggingSettings(file_path=str(log_file), console_logging=False)

        root = configure_application_logging(settings)
        get_logger_for_component("web", feed_id="sspai").info("Serving")
        for handler in root.handlers:
            handler.flush()

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert len(root.handlers) == 1
        assert json.loads(lines[-1])["feed_id"] == "sspai"

    def test_reconfigure_replaces_handlers(self, restore_root_logger):
        settings = LoggingSettings(file_path=None, console_logging=True)

        configure_application_logging(settings)
        root = configure_application_logging(settings, level="debug")

        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG
        assert logging.getLogger("aiohttp.access").level == logging.WARNING

    def test_structured_console_uses_json(self, restore_root_logger):
        settings = LoggingSettings(file_path=None, console_logging=True, structured_logging=True)

        root = configure_application_logging(settings)

        assert isinstance(root.handlers[0].formatter, JSONLineFormatter)


class TestOperationTimer:
    """Test timing records for feed generation."""

    @pytest.fixture
    def logger(self):
        return get_logger_for_component("timer_check", feed_id="sspai")

    def test_completion_record_carries_noted_fields(self, logger, caplog):
        with caplog.at_level(logging.DEBUG, logger="pirss.timer_check"):
            with OperationTimer(logger, "primary feed generation") as timer:
                timer.note(entries=12)

        started, completed = caplog.records[-2:]
        assert started.levelname == "DEBUG"
        assert completed.levelname == "INFO"
        assert completed.getMessage().startswith("Completed primary feed generation")
        assert completed.entries == 12
        assert completed.feed_id == "sspai"
        assert completed.duration_seconds >= 0

    def test_failure_logged_and_propagated(self, logger, caplog):
        with caplog.at_level(logging.INFO, logger="pirss.timer_check"):
            with pytest.raises(RuntimeError):
                with OperationTimer(logger, "secondary feed generation"):
                    raise RuntimeError("upstream down")

        record = caplog.records[-1]
        assert record.levelname == "ERROR"
        assert "upstream down" in record.getMessage()

    def test_cancellation_is_not_an_error(self, logger, caplog):
        with caplog.at_level(logging.INFO, logger="pirss.timer_check"):
            with pytest.raises(asyncio.CancelledError):
                with OperationTimer(logger, "primary feed generation"):
                    raise asyncio.CancelledError()

        record = caplog.records[-1]
        assert record.levelname == "INFO"
        assert record.getMessage().startswith("Cancelled primary feed generation")
