import json
import logging

import pytest

from sdv_pipeline.core.logging import ContextFilter, JSONFormatter, log_execution_time


def make_record(message="hello"):
    return logging.LogRecord("sdv_pipeline.test", logging.INFO, __file__, 1, message, None, None)


def test_json_formatter_includes_structured_fields():
    record = make_record()
    record.extra_fields = {"request_id": "r-1", "status_code": 200}
    ContextFilter({"environment": "testing", "job_id": "j-1"}).filter(record)

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "hello"
    assert entry["level"] == "INFO"
    assert entry["request_id"] == "r-1"
    assert entry["status_code"] == 200
    assert entry["environment"] == "testing"
    assert entry["job_id"] == "j-1"


async def test_log_execution_time_wraps_coroutines(caplog):
    logger = logging.getLogger("sdv_pipeline.timing")

    @log_execution_time(logger)
    async def double(value):
        return value * 2

    with caplog.at_level(logging.INFO, logger="sdv_pipeline.timing"):
        assert await double(4) == 8

    assert "double executed in" in caplog.text


def test_log_execution_time_logs_failures(caplog):
    logger = logging.getLogger("sdv_pipeline.timing")

    @log_execution_time(logger)
    def explode():
        raise ValueError("boom")

    with caplog.at_level(logging.INFO, logger="sdv_pipeline.timing"):
        with pytest.raises(ValueError):
            explode()

    assert "explode failed after" in caplog.text
