"""Unit tests for the logging infrastructure."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from fanout_service.core.settings import LoggingSettings
from fanout_service.infra.logging import (
    ContextInjectingFilter,
    JSONFormatter,
    configure_logging,
    get_lazy_logger,
    get_log_context,
    get_logger,
    log_context,
    set_log_context,
    setup_logging,
    shutdown,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield
    shutdown()
    root.setLevel(level)


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="fanout_service.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestJSONFormatter:
    def test_basic_fields(self):
        output = json.loads(JSONFormatter(static={"service": "fanout-service"}).format(_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "fanout_service.test"
        assert output["message"] == "hello"
        assert output["service"] == "fanout-service"
        assert output["timestamp"].endswith("Z")

    def test_extras_are_copied(self):
        output = json.loads(JSONFormatter().format(_record(item_type="reply", item_id=7)))

        assert output["item_type"] == "reply"
        assert output["item_id"] == 7
        assert "args" not in output

    def test_exception_is_single_line(self):
        try:
            raise ValueError("bad\nvalue")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        formatted = JSONFormatter().format(record)

        assert "\n" not in formatted
        assert "ValueError" in json.loads(formatted)["exception"]

    def test_function_name_optional(self):
        record = _record()
        record.funcName = "dispatch"

        assert "function" not in json.loads(JSONFormatter().format(record))
        assert json.loads(JSONFormatter(include_function_name=True).format(record))["function"] == "dispatch"


@pytest.mark.unit
class TestLogContext:
    def test_set_and_get(self):
        set_log_context(item_type="reply")
        set_log_context(item_id=3)

        assert get_log_context() == {"item_type": "reply", "item_id": 3}

    def test_context_manager_restores(self):
        set_log_context(request="outer")
        with log_context(item_type="quote"):
            assert get_log_context() == {"request": "outer", "item_type": "quote"}

        assert get_log_context() == {"request": "outer"}

    def test_filter_does_not_overwrite_record_attributes(self):
        record = _record(item_id=1)
        with log_context(item_id=99, channel="email"):
            assert ContextInjectingFilter().filter(record) is True

        assert record.item_id == 1
        assert record.channel == "email"

    def test_bound_logger_merges_extra(self, caplog: pytest.LogCaptureFixture):
        logger = get_logger("fanout_service.test.bound", channel="email").bind(batch=2)

        with caplog.at_level(logging.INFO, logger="fanout_service.test.bound"):
            logger.info("sent", extra={"delivered": 2})

        record = caplog.records[-1]
        assert (record.channel, record.batch, record.delivered) == ("email", 2, 2)


@pytest.mark.unit
class TestLazyLogger:
    def test_callable_not_evaluated_when_disabled(self):
        calls = []
        logger = get_lazy_logger("fanout_service.test.lazy_off")
        logger.logger.setLevel(logging.INFO)

        logger.debug(lambda: calls.append("evaluated") or "message")

        assert calls == []

    def test_callable_evaluated_when_enabled(self, caplog: pytest.LogCaptureFixture):
        logger = get_lazy_logger("fanout_service.test.lazy_on")

        with caplog.at_level(logging.DEBUG, logger="fanout_service.test.lazy_on"):
            logger.debug(lambda: "computed")
            logger.info("count=%s", lambda: 3)

        assert [r.getMessage() for r in caplog.records] == ["computed", "count=3"]


@pytest.mark.unit
class TestConfigureLogging:
    def test_json_file_output_with_context(self, tmp_path):
        log_file = tmp_path / "logs" / "fanout.jsonl"
        configure_logging(
            log_level="INFO",
            json_logs=True,
            console_enabled=False,
            file_path=log_file,
            capture_warnings=False,
            service_name="fanout-test",
        )
        try:
            with log_context(item_type="reply", item_id=5):
                logging.getLogger("fanout_service.test.config").info("Dispatched", extra={"inserted": 2})
        finally:
            shutdown()

        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["message"] == "Dispatched"
        assert entry["service"] == "fanout-test"
        assert entry["item_type"] == "reply"
        assert entry["item_id"] == 5
        assert entry["inserted"] == 2

    def test_setup_logging_from_settings(self, tmp_path):
        settings = LoggingSettings(
            level="WARNING",
            json_logs=False,
            console_enabled=False,
            file_enabled=True,
            file_path=tmp_path / "fanout.log",
            capture_warnings=False,
        )
        try:
            setup_logging(settings, force=True)
            logging.getLogger("fanout_service.test.setup").info("hidden")
            logging.getLogger("fanout_service.test.setup").warning("shown")
        finally:
            shutdown()

        content = (tmp_path / "fanout.log").read_text(encoding="utf-8")
        assert "shown" in content
        assert "hidden" not in content
        assert logging.getLogger().level == logging.WARNING
