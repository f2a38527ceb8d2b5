"""Unit tests for log correlation and formatting."""

import json
import logging

from gigescrow.logging_config import (
    JsonFormatter,
    LogContextFilter,
    bind_submission,
    request_id_var,
    submission_key_var,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "gigescrow.test", "msg": "Blob registered", "levelname": "INFO"})
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_bind_submission_scopes_key():
    assert submission_key_var.get() is None
    with bind_submission("0x10", 2) as key:
        assert key == "0x10:2"
        assert submission_key_var.get() == "0x10:2"
    assert submission_key_var.get() is None


def test_filter_copies_context():
    token = request_id_var.set("req-1")
    try:
        with bind_submission("0x10", 0):
            record = _record()
            LogContextFilter().filter(record)
    finally:
        request_id_var.reset(token)
    assert record.request_id == "req-1"
    assert record.submission_key == "0x10:0"


def test_json_formatter_keeps_extras():
    record = _record(request_id="req-1", submission_key="-", digest="d1", payload=object())
    entry = json.loads(JsonFormatter().format(record))
    assert entry["msg"] == "Blob registered"
    assert entry["request_id"] == "req-1"
    assert "submission_key" not in entry
    assert entry["digest"] == "d1"
    assert isinstance(entry["payload"], str)
