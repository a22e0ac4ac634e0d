"""Tests for logging configuration."""

import json
import logging

import pytest

from services.logging_config import (
    ContextLogger,
    JsonFormatter,
    ReadableFormatter,
    configure_logging,
    get_logger,
    log_store_call,
    session_id_var,
)


def make_record(message="hello", **extra_data):
    record = logging.LogRecord(
        name="wizard.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    if extra_data:
        record.extra_data = extra_data
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields(self):
        data = json.loads(JsonFormatter().format(make_record()))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "wizard.test"

    def test_extra_data_merged(self):
        data = json.loads(JsonFormatter().format(make_record(step_id="a", version=2)))
        assert data["step_id"] == "a"
        assert data["version"] == 2

    def test_session_context(self):
        token = session_id_var.set("42")
        try:
            data = json.loads(JsonFormatter().format(make_record()))
        finally:
            session_id_var.reset(token)
        assert data["session_id"] == "42"


class TestReadableFormatter:
    """Tests for ReadableFormatter."""

    def test_contains_message(self):
        output = ReadableFormatter().format(make_record("saved step"))
        assert "saved step" in output


class TestContextLogger:
    """Tests for ContextLogger."""

    def test_bound_context_in_extra(self, caplog):
        logger = get_logger("wizard.test.context", session_id=7)
        assert isinstance(logger, ContextLogger)

        with caplog.at_level(logging.INFO, logger="wizard.test.context"):
            logger.info("hydrated", extra={'extra_data': {'steps_loaded': 3}})

        record = caplog.records[-1]
        assert record.extra_data == {'steps_loaded': 3, 'session_id': 7}


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_output_and_file(self, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            log_file = tmp_path / "logs" / "wizard.log"
            configure_logging(level="DEBUG", json_output=True, log_file=log_file)

            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert log_file.parent.is_dir()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestLogStoreCall:
    """Tests for the log_store_call decorator."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        @log_store_call()
        async def load():
            return "loaded"

        assert await load() == "loaded"

    @pytest.mark.asyncio
    async def test_reraises(self):
        @log_store_call("custom_name")
        async def broken():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError, match="down"):
            await broken()
