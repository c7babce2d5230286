"""
Tests for partial results handling utilities.
"""

import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from kafkaview.domain.errors import (
    QueryExecutionFailure,
    TemplateNotFound,
    UnsupportedAttribute,
)
from kafkaview.utils.partial_results import (
    FailureInfo,
    PartialResult,
    classify_error,
    format_failure_summary,
    gather_partial,
    is_retryable,
)


@pytest.mark.asyncio
async def test_gather_partial_all_succeed():
    """Test gathering when all operations succeed."""

    async def success_op(value):
        await asyncio.sleep(0.01)
        return value

    operations = {
        "op1": success_op("result1"),
        "op2": success_op("result2"),
        "op3": success_op("result3"),
    }

    result = await gather_partial(operations, "test_operation")

    assert not result.has_failures
    assert result.success_rate == 1.0
    assert result.successes == {
        "op1": "result1",
        "op2": "result2",
        "op3": "result3",
    }


@pytest.mark.asyncio
async def test_gather_partial_some_fail():
    """Test gathering when some operations fail."""

    async def success_op(value):
        return value

    async def fail_op(msg):
        raise ValueError(msg)

    operations = {
        "op1": success_op("result1"),
        "op2": fail_op("error in op2"),
        "op3": success_op("result3"),
        "op4": fail_op("error in op4"),
    }

    result = await gather_partial(operations, "test_operation")

    assert result.has_failures
    assert not result.all_failed
    assert result.success_rate == 0.5
    assert list(result.successes) == ["op1", "op3"]

    # Check failure info
    failed_ids = {f.identifier for f in result.failures}
    assert failed_ids == {"op2", "op4"}
    assert all(f.error_type == "parse_error" for f in result.failures)
    assert result.failure_for("op2").error == "error in op2"
    assert result.failure_for("op1") is None


@pytest.mark.asyncio
async def test_gather_partial_one_slow_failure_does_not_cancel_others():
    """A failing operation never cancels its siblings."""
    finished = []

    async def slow_success():
        await asyncio.sleep(0.05)
        finished.append("slow")
        return "ok"

    async def fast_fail():
        raise QueryExecutionFailure("boom")

    result = await gather_partial({"slow": slow_success(), "fast": fast_fail()})

    assert finished == ["slow"]
    assert result.successes == {"slow": "ok"}
    assert result.failure_for("fast").error_type == "query_failed"


@pytest.mark.asyncio
async def test_gather_partial_empty_operations():
    """Test that empty operations dict raises ValueError."""
    with pytest.raises(ValueError, match="operations dictionary cannot be empty"):
        await gather_partial({}, "test")


@pytest.mark.asyncio
async def test_gather_partial_cancellation_propagates_to_operations():
    """Cancelling the caller cancels every pending operation."""
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def hang():
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    task = asyncio.create_task(gather_partial({"hang": hang()}, "test"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.wait_for(cancelled.wait(), timeout=1)


@pytest.mark.asyncio
async def test_gather_partial_classifies_http_errors():
    """Test that different HTTP errors are classified correctly."""

    async def timeout_error():
        raise httpx.TimeoutException("timeout")

    async def server_error():
        response = MagicMock()
        response.status_code = 503
        raise httpx.HTTPStatusError(
            "server error", request=MagicMock(), response=response
        )

    async def not_found():
        response = MagicMock()
        response.status_code = 404
        raise httpx.HTTPStatusError("not found", request=MagicMock(), response=response)

    async def rate_limit():
        response = MagicMock()
        response.status_code = 429
        raise httpx.HTTPStatusError(
            "rate limit", request=MagicMock(), response=response
        )

    operations = {
        "timeout": timeout_error(),
        "server": server_error(),
        "notfound": not_found(),
        "ratelimit": rate_limit(),
    }

    result = await gather_partial(operations, "test")

    assert result.all_failed
    failures_by_id = {f.identifier: f for f in result.failures}

    assert failures_by_id["timeout"].error_type == "timeout"
    assert failures_by_id["timeout"].retryable is True

    assert failures_by_id["server"].error_type == "server_error"
    assert failures_by_id["server"].retryable is True

    assert failures_by_id["notfound"].error_type == "not_found"
    assert failures_by_id["notfound"].retryable is False

    assert failures_by_id["ratelimit"].error_type == "rate_limit"
    assert failures_by_id["ratelimit"].retryable is True


@pytest.mark.parametrize(
    "exc,expected",
    [
        (QueryExecutionFailure("x"), "query_failed"),
        (QueryExecutionFailure("x", status_code=401), "auth_error"),
        (QueryExecutionFailure("x", error_type="timeout"), "timeout"),
        (TemplateNotFound("P", "Broker", "health"), "template_not_found"),
        (UnsupportedAttribute("P", "brokerId"), "unsupported_attribute"),
        (httpx.ConnectError("refused"), "connection_error"),
        (TimeoutError(), "timeout"),
        (KeyError("data"), "missing_field"),
        (RuntimeError("?"), "unknown_error"),
    ],
)
def test_classify_error(exc, expected):
    assert classify_error(exc) == expected


def test_is_retryable_honours_executor_flag():
    assert is_retryable("query_failed") is False
    assert is_retryable("query_failed", QueryExecutionFailure("x", retryable=True))
    assert is_retryable("connection_error")


def test_format_failure_summary_no_failures():
    """Test formatting summary when no failures."""
    result = PartialResult(successes={"a": 1, "b": 2, "c": 3}, failures=[])
    summary = format_failure_summary(result, "test")
    assert "All 3 test(s) succeeded" in summary


def test_format_failure_summary_with_failures():
    """Test formatting summary with failures."""
    result = PartialResult(
        successes={"a": 1, "b": 2},
        failures=[
            FailureInfo("id1", "error1", "timeout", retryable=True),
            FailureInfo("id2", "error2", "timeout", retryable=True),
            FailureInfo("id3", "error3", "not_found", retryable=False),
        ],
    )
    summary = format_failure_summary(result, "provider")

    assert "2 succeeded, 3 failed" in summary
    assert "40.0% success rate" in summary
    assert "2 timeout (retryable)" in summary
    assert "1 not_found (not retryable)" in summary
    assert "id1" in summary


def test_format_failure_summary_many_failures():
    """Test formatting summary with many failures (truncation)."""
    failures = [
        FailureInfo(f"id{i}", f"error{i}", "server_error", retryable=True)
        for i in range(10)
    ]
    result = PartialResult(failures=failures)
    summary = format_failure_summary(result)

    # Should show first 3 and indicate more
    assert "id0" in summary
    assert "id2" in summary
    assert "id3" not in summary
    assert "... and 7 more" in summary


def test_partial_result_properties():
    """Test PartialResult computed properties."""
    empty = PartialResult()
    assert empty.success_rate == 0.0
    assert not empty.has_failures
    assert not empty.all_failed

    mixed = PartialResult(
        successes={"a": 1},
        failures=[FailureInfo("id1", "e1", "error")],
    )
    assert mixed.success_rate == 0.5
    assert mixed.has_failures
    assert not mixed.all_failed
