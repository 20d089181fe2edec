"""
日志上下文测试

测试 app/infra/logging.py
"""

import json
import logging

from app.infra.logging import (
    ConsoleFormatter,
    ContextFilter,
    JSONFormatter,
    organisation_id_var,
    request_id_var,
)


def _record(msg="拒绝访问", **extra) -> logging.LogRecord:
    record = logging.LogRecord("app.services.acl", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestContextFilter:

    def test_attaches_request_context(self):
        request_token = request_id_var.set("req-12345678-abcd")
        organisation_token = organisation_id_var.set("org-1")
        try:
            record = _record()
            assert ContextFilter().filter(record)
        finally:
            organisation_id_var.reset(organisation_token)
            request_id_var.reset(request_token)

        assert record.request_id == "req-12345678-abcd"
        assert record.organisation_id == "org-1"

    def test_outside_request(self):
        record = _record()
        ContextFilter().filter(record)
        assert record.request_id is None
        assert record.organisation_id is None


class TestFormatters:

    def test_json_carries_context_and_extra(self):
        record = _record(entry_id="e1", request_id="r1", organisation_id=None)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "拒绝访问"
        assert payload["request_id"] == "r1"
        assert "organisation_id" not in payload
        assert payload["extra"] == {"entry_id": "e1"}

    def test_console_shortens_request_id(self):
        record = _record(request_id="req-12345678-abcd", organisation_id=None)

        text = ConsoleFormatter().format(record)

        assert "[req-1234] app.services.acl - 拒绝访问" in text
