"""Tests for LogContext and RequestLogContext."""

import pytest

from core.logging.context import clear_log_context, get_log_context, set_log_context
from core.logging.context_managers import LogContext, RequestLogContext


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


class TestLogContext:
    def test_sets_fields_inside_block(self):
        with LogContext(operation="refresh", credential_kind="user_access"):
            ctx = get_log_context()
            assert ctx["operation"] == "refresh"
            assert ctx["credential_kind"] == "user_access"

    def test_restores_previous_values(self):
        set_log_context(operation="outer", environment="sandbox")

        with LogContext(operation="inner"):
            assert get_log_context()["operation"] == "inner"
            assert get_log_context()["environment"] == "sandbox"

        assert get_log_context()["operation"] == "outer"

    def test_restores_on_exception(self):
        with pytest.raises(ValueError):
            with LogContext(request_id="r1"):
                raise ValueError("boom")

        assert get_log_context()["request_id"] == ""

    def test_nested(self):
        with LogContext(operation="a"):
            with LogContext(credential_kind="application"):
                ctx = get_log_context()
                assert ctx["operation"] == "a"
                assert ctx["credential_kind"] == "application"
            assert get_log_context()["credential_kind"] == ""


class TestRequestLogContext:
    def test_generates_request_id(self):
        with RequestLogContext("GET /x") as ctx:
            assert len(ctx.request_id) == 12
            assert get_log_context()["request_id"] == ctx.request_id
            assert get_log_context()["operation"] == "GET /x"

        assert get_log_context()["request_id"] == ""

    def test_request_ids_are_unique(self):
        ids = set()
        for _ in range(20):
            with RequestLogContext("GET /x") as ctx:
                ids.add(ctx.request_id)
        assert len(ids) == 20

    def test_sets_credential_kind(self):
        with RequestLogContext("GET /x", credential_kind="application"):
            assert get_log_context()["credential_kind"] == "application"

    def test_records_result_and_duration(self):
        with RequestLogContext("GET /x") as ctx:
            ctx.set_result(http_status=200)

        assert ctx.result_context["http_status"] == 200
        assert ctx.result_context["duration_ms"] >= 0

    def test_duration_recorded_on_exception(self):
        ctx = RequestLogContext("GET /x")
        with pytest.raises(RuntimeError):
            with ctx:
                raise RuntimeError("fail")

        assert "duration_ms" in ctx.result_context
