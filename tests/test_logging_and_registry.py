from __future__ import annotations

import json
import logging
import sys

import pytest

from liftlog_workers import registry
from liftlog_workers.logging import JSONFormatter, TextFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="liftlog_workers.worker",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Job %d completed",
        args=(7,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_includes_liftlog_extras_only(self):
        line = JSONFormatter().format(_record(liftlog_user_id="u1", liftlog_duration_ms=1.5, other="x"))
        entry = json.loads(line)
        assert entry["message"] == "Job 7 completed"
        assert entry["level"] == "INFO"
        assert entry["liftlog_user_id"] == "u1"
        assert entry["liftlog_duration_ms"] == 1.5
        assert "other" not in entry

    def test_json_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]

    def test_text_appends_context(self):
        line = TextFormatter().format(_record(liftlog_job_type="analytics.rebuild", liftlog_user_id="u1"))
        assert line.endswith("Job 7 completed [job_type=analytics.rebuild user_id=u1]")

    def test_setup_logging_replaces_handlers(self):
        root = logging.getLogger()
        saved = root.handlers[:]
        try:
            setup_logging("json")
            setup_logging("text")
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, TextFormatter)
        finally:
            root.handlers[:] = saved


class TestRegistry:
    def test_duplicate_registration_is_rejected(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(registry, "_registry", {})

        @registry.register("analytics.test")
        async def handler(conn, payload):
            return None

        assert registry.get_handler("analytics.test") is handler
        assert registry.registered_types() == ["analytics.test"]
        with pytest.raises(ValueError, match="Duplicate handler"):
            registry.register("analytics.test")(handler)

    def test_unknown_type(self):
        assert registry.get_handler("analytics.unknown") is None
