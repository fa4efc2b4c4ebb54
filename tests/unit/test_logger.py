"""
Name: Structured Logger Tests

Responsibilities:
  - Validate redaction of sensitive snapshot keys
  - Validate JSON output carries the operation context
"""

import json
import sys
import logging
from datetime import datetime, timezone

import pytest

from logify.context import clear_context, operation_scope, set_job_context
from logify.crosscutting.logger import JSONFormatter, SnapshotSanitizer
from logify.domain.properties import UNCHANGED

pytestmark = pytest.mark.unit


def _record(msg: str = "hola", **extra) -> logging.LogRecord:
    record = logging.LogRecord("logify", logging.INFO, __file__, 10, msg, (), None)
    record.__dict__.update(extra)
    return record


class TestSnapshotSanitizer:
    def test_sensitive_keys_by_name_and_suffix(self):
        clean = SnapshotSanitizer().sanitize(
            {"user_pass": "x", "session_token": "y", "Password": "z", "user_login": "bob"}
        )
        assert clean == {
            "user_pass": "***REDACTADO***",
            "session_token": "***REDACTADO***",
            "Password": "***REDACTADO***",
            "user_login": "bob",
        }

    def test_audit_values_are_made_json_friendly(self):
        sanitizer = SnapshotSanitizer(max_str=5)
        when = datetime(2025, 1, 1, tzinfo=timezone.utc)

        assert sanitizer.sanitize({"b", "a"}) == ["a", "b"]
        assert sanitizer.sanitize(when) == when.isoformat()
        assert sanitizer.sanitize("abcdefgh") == "abcde…(truncado)"
        assert isinstance(sanitizer.sanitize(UNCHANGED), str)

    def test_depth_is_bounded(self):
        nested = {"a": {"b": {"c": 1}}}
        assert SnapshotSanitizer(max_depth=1).sanitize(nested) == {
            "a": {"b": "***TRUNCADO***"}
        }


class TestJSONFormatter:
    def test_includes_context_and_extras(self):
        set_job_context(job_id="rq-7")
        try:
            with operation_scope("op-42"):
                line = JSONFormatter().format(
                    _record(classification="Post Updated", snapshot={"user_pass": "s"})
                )
        finally:
            clear_context()

        payload = json.loads(line)
        assert payload["message"] == "hola"
        assert payload["job_id"] == "rq-7"
        assert payload["operation_id"] == "op-42"
        assert payload["classification"] == "Post Updated"
        assert payload["snapshot"] == {"user_pass": "***REDACTADO***"}

    def test_operation_scope_is_restored(self):
        with operation_scope("op-1"):
            pass
        payload = json.loads(JSONFormatter().format(_record()))
        assert "operation_id" not in payload

    def test_exception_is_attached(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()

        payload = json.loads(JSONFormatter().format(record))
        assert payload["exception"]["type"] == "RuntimeError"
        assert payload["exception"]["message"] == "boom"
