"""
Tests for the structured logging module.
"""

import asyncio
import json
import logging

import pytest

from collection_runtime.errors import NotFoundError
from collection_runtime.logging import (
    JSONFormatter,
    LogContext,
    StructuredLogger,
    TextFormatter,
    TransitionLog,
    configure_logging,
    generate_request_id,
    generate_trace_id,
    get_logger,
)


def _payloads(caplog, name):
    return [{"message": r.getMessage(), **r.fields} for r in caplog.records if r.name == name]


class TestLogContext:
    """Test LogContext dataclass."""

    def test_to_dict_skips_empty_fields(self):
        ctx = LogContext(trace_id="t1", job_id="collection-1", extra={"custom": "value"})

        assert ctx.to_dict() == {"trace_id": "t1", "job_id": "collection-1", "custom": "value"}

    def test_with_update(self):
        ctx = LogContext(trace_id="t1", caller_id="u1")
        updated = ctx.with_update(operation="cancel", extra={"role": "org_admin"})

        assert updated.trace_id == "t1"
        assert updated.caller_id == "u1"
        assert updated.operation == "cancel"
        assert updated.extra == {"role": "org_admin"}
        assert ctx.operation is None


class TestTransitionLog:
    def test_to_dict_drops_none(self):
        entry = TransitionLog(job_id="collection-1", from_state=None, to_state="started")

        d = entry.to_dict()

        assert d["to_state"] == "started"
        assert "from_state" not in d
        assert "timestamp" in d


class TestStructuredLogger:
    """Test StructuredLogger output."""

    def test_json_output(self, caplog, capture):
        logger = StructuredLogger("collection_runtime.test_json", level="DEBUG")
        capture(logger, logging.DEBUG)

        logger.info("hello", job_id="collection-1")

        [payload] = _payloads(caplog, logger.name)
        assert payload["message"] == "hello"
        assert payload["job_id"] == "collection-1"

    def test_trace_context_restores(self, caplog, capture):
        logger = StructuredLogger("collection_runtime.test_trace", level="DEBUG")
        capture(logger, logging.DEBUG)

        with logger.trace_context(trace_id="trace_abc", operation="status") as trace_id:
            assert trace_id == "trace_abc"
            logger.debug("inside")
        logger.debug("outside")

        inside, outside = _payloads(caplog, logger.name)
        assert inside["trace_id"] == "trace_abc"
        assert inside["operation"] == "status"
        assert "trace_id" not in outside

    @pytest.mark.asyncio
    async def test_trace_context_is_task_local(self, caplog, capture):
        logger = StructuredLogger("collection_runtime.test_tasks", level="DEBUG")
        capture(logger, logging.DEBUG)
        entered = asyncio.Event()
        release = asyncio.Event()

        async def traced():
            with logger.trace_context(trace_id="trace_task"):
                entered.set()
                await release.wait()

        async def untraced():
            await entered.wait()
            logger.info("bystander")
            release.set()

        await asyncio.gather(traced(), untraced())

        [payload] = _payloads(caplog, logger.name)
        assert "trace_id" not in payload

    def test_log_transition(self, caplog, capture):
        logger = StructuredLogger("collection_runtime.test_transition")
        capture(logger, logging.INFO)

        logger.log_transition(TransitionLog(
            job_id="collection-1",
            from_state="started",
            to_state="in_progress",
            progress_percent=40,
        ))

        [payload] = _payloads(caplog, logger.name)
        assert payload["event_type"] == "transition"
        assert payload["message"] == "Job collection-1: started -> in_progress"
        assert payload["progress_percent"] == 40

    def test_log_error_includes_code_and_context(self, caplog, capture):
        logger = StructuredLogger("collection_runtime.test_error")
        capture(logger, logging.INFO)

        logger.log_error(NotFoundError(job_id="collection-9"), "lookup failed")

        [record] = [r for r in caplog.records if r.name == logger.name]
        payload = record.fields
        assert record.levelno == logging.ERROR
        assert record.getMessage() == "lookup failed"
        assert payload["error_type"] == "NotFoundError"
        assert payload["error_code"] == "ERR_2000"
        assert payload["error_context"]["job_id"] == "collection-9"

    def test_text_output(self, caplog, capture):
        logger = StructuredLogger("collection_runtime.test_text", json_output=False)
        capture(logger, logging.INFO)

        logger.warning("ignored report", job_id="collection-1")

        [record] = [r for r in caplog.records if r.name == logger.name]
        line = TextFormatter().format(record)
        assert record.getMessage() == "ignored report"
        assert line.endswith("ignored report job_id=collection-1")

    @pytest.mark.asyncio
    async def test_manager_warns_on_ignored_report(self, caplog, capture, manager, logger):
        capture(logger, logging.DEBUG)

        receipt = await manager.trigger("u1", "full")
        await manager.cancel(receipt.job_id, "u1", None)
        await manager.report_progress(receipt.job_id, 10, 10)

        warnings = [r for r in caplog.records if r.name == logger.name and r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "Ignored report_progress" in warnings[0].getMessage()


class TestFormatters:
    def _record(self, msg: str, **fields) -> logging.LogRecord:
        record = logging.LogRecord("x", logging.INFO, __file__, 1, msg, None, None)
        if fields:
            record.fields = fields
        return record

    def test_json_formatter_merges_fields(self):
        out = json.loads(JSONFormatter().format(self._record("m", job_id="j")))

        assert out["level"] == "INFO"
        assert out["message"] == "m"
        assert out["job_id"] == "j"

    def test_json_formatter_plain_message(self):
        out = json.loads(JSONFormatter().format(self._record("plain")))

        assert out["message"] == "plain"

    def test_text_formatter(self):
        line = TextFormatter().format(self._record("plain", job_id="j"))

        assert "plain job_id=j" in line


class TestHelpers:
    def test_ids(self):
        assert generate_trace_id().startswith("trace_")
        assert generate_request_id().startswith("req_")
        assert generate_trace_id() != generate_trace_id()

    def test_configure_logging_replaces_default(self):
        configured = configure_logging(level="DEBUG", json_output=False)

        assert get_logger() is configured
        assert configured.json_output is False

    def test_get_logger_by_name(self):
        assert get_logger("collection_runtime.other").name == "collection_runtime.other"


class TestLoggerScope:
    """Test where records go and which context they carry."""

    def test_logger_does_not_propagate(self):
        logger = StructuredLogger("collection_runtime.test_propagate")

        assert logging.getLogger(logger.name).propagate is False

    @pytest.mark.asyncio
    async def test_set_context_applies_to_current_task(self, caplog, capture):
        logger = StructuredLogger("collection_runtime.test_set_context", level="DEBUG")
        capture(logger, logging.DEBUG)

        async def handle():
            logger.set_context(request_id=generate_request_id(), caller_id="u1")
            logger.info("handled")

        await asyncio.create_task(handle())
        logger.info("after")

        handled, after = _payloads(caplog, logger.name)
        assert handled["request_id"].startswith("req_")
        assert handled["caller_id"] == "u1"
        assert "request_id" not in after
