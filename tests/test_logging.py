"""Tests for the structured logging system (payroll_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
import threading
from io import StringIO
from uuid import uuid4

import pytest

from payroll_kernel.domain.findings import ExceptionKind
from payroll_kernel.logging_config import (
    LogContext,
    mask_identifier,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "payroll.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("validated", extra={"exception_count": 3, "step": "review"})

        record = _parse_log(stream)
        assert record["exception_count"] == 3
        assert record["step"] == "review"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(cycle_id="2025-11-a", run_id="run-1", worker_id="w-1")
        get_logger("test").info("worker_execution_failed")

        record = _parse_log(stream)
        assert record["cycle_id"] == "2025-11-a"
        assert record["run_id"] == "run-1"
        assert record["worker_id"] == "w-1"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "cycle_id" not in record
        assert "run_id" not in record

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_payroll_exception_code_extracted(self):
        from payroll_kernel.exceptions import CycleLockedError

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise CycleLockedError("2025-11-a", "snooze worker")
        except CycleLockedError:
            get_logger("test").error("cycle_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "CYCLE_LOCKED"
        assert record["exc_type"] == "CycleLockedError"
        assert record["exc_cycle_id"] == "2025-11-a"
        assert record["exc_operation"] == "snooze worker"

    def test_non_json_types_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={
                "row_id": uid,
                "amount": Decimal("909.09"),
                "as_of": date(2025, 11, 10),
                "kind": ExceptionKind.MISSING_BANK,
            },
        )

        record = _parse_log(stream)
        assert record["row_id"] == str(uid)
        assert record["amount"] == "909.09"
        assert record["as_of"] == "2025-11-10"
        assert record["kind"] == "missing-bank"

    def test_thread_name_outside_main_thread(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("on_main")
        worker = threading.Thread(
            target=lambda: get_logger("test").info("on_worker"), name="payroll-exec_0",
        )
        worker.start()
        worker.join()

        main, other = _parse_all_logs(stream)
        assert "thread" not in main
        assert other["thread"] == "payroll-exec_0"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------


class TestRedaction:

    def test_mask_keeps_last_four(self):
        assert mask_identifier("123-456-789") == "****6789"
        assert mask_identifier(12345678) == "****5678"
        assert mask_identifier("123") == "****"

    def test_sensitive_extras_masked(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "worker_loaded",
            extra={
                "bank_account": "001234567890",
                "government_ids": {"TIN": "123-456-789", "SSS": "34-5678901-2"},
                "worker_name": "Employee e1",
            },
        )

        record = _parse_log(stream)
        assert record["bank_account"] == "****7890"
        assert record["government_ids"] == {"TIN": "****6789", "SSS": "****01-2"}
        assert record["worker_name"] == "Employee e1"
        assert "001234567890" not in stream.getvalue()

    def test_sensitive_exception_fields_masked(self):
        class _BankError(Exception):
            def __init__(self, account_number):
                super().__init__("bank rejected the account")
                self.account_number = account_number

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise _BankError("998877665544")
        except _BankError:
            get_logger("test").error("payout_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_account_number"] == "****5544"

    def test_none_left_alone(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("worker_loaded", extra={"tin": None})
        assert _parse_log(stream)["tin"] is None


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor_id="ops")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "ops"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(cycle_id="outer")
        with LogContext.bind(cycle_id="inner"):
            assert LogContext.get_all()["cycle_id"] == "inner"
        assert LogContext.get_all()["cycle_id"] == "outer"

    def test_bind_restores_none(self):
        assert "run_id" not in LogContext.get_all()
        with LogContext.bind(run_id="run-1"):
            assert LogContext.get_all()["run_id"] == "run-1"
        assert "run_id" not in LogContext.get_all()

    def test_bind_ignores_none_values(self):
        with LogContext.bind(run_id=None, worker_id="w-1"):
            assert LogContext.get_all() == {"worker_id": "w-1"}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            cycle_id="cy",
            run_id="r",
            worker_id="w",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["worker_id"] == "w"

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="batch_id"):
            LogContext.set(batch_id="b")
        with pytest.raises(TypeError, match="batch_id"):
            with LogContext.bind(batch_id="b"):
                pass
        assert LogContext.get_all() == {}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(run_id="run-1"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("payroll").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.batch").name == "payroll.services.batch"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "payroll.deep.nested.module"

    def test_reset_restores_propagation(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        assert logging.getLogger("payroll").propagate is False
        reset_logging()
        root = logging.getLogger("payroll")
        assert root.propagate is True
        assert root.handlers == []
