"""
Partial results handling for per-provider queries.

Provides utilities for running one operation per provider concurrently and
collecting the successful results while tracking failures, so the overview
table renders with whatever subset of providers succeeded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Hashable, List, Mapping, Optional

import httpx

from ..domain.errors import KafkaViewError, QueryExecutionFailure

logger = logging.getLogger(__name__)

_RETRYABLE_TYPES = {
    "timeout",
    "connection_error",
    "server_error",
    "rate_limit",
}


@dataclass
class FailureInfo:
    """
    Information about a failed operation.

    Attributes
    ----------
    identifier : Hashable
        Identifier for the failed operation (e.g., provider id)
    error : str
        Error message
    error_type : str
        Type of error (e.g., "query_failed", "timeout", "template_not_found")
    retryable : bool
        Whether the operation might succeed if retried
    exception : Optional[BaseException]
        Original exception, kept for callers that re-classify it
    """

    identifier: Hashable
    error: str
    error_type: str
    retryable: bool = False
    exception: Optional[BaseException] = field(default=None, repr=False)


@dataclass
class PartialResult:
    """
    Result container for operations that may partially fail.

    Attributes
    ----------
    successes : Dict[Hashable, Any]
        Successful results keyed by operation identifier, in submission order
    failures : List[FailureInfo]
        Information about failed operations
    """

    successes: Dict[Hashable, Any] = field(default_factory=dict)
    failures: List[FailureInfo] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate success rate (0.0-1.0)."""
        total = len(self.successes) + len(self.failures)
        if total == 0:
            return 0.0
        return len(self.successes) / total

    @property
    def has_failures(self) -> bool:
        """Check if any operations failed."""
        return len(self.failures) > 0

    @property
    def all_failed(self) -> bool:
        """Check if all operations failed."""
        return len(self.successes) == 0 and len(self.failures) > 0

    def failure_for(self, identifier: Hashable) -> Optional[FailureInfo]:
        """Return the failure recorded for ``identifier``, if any."""
        for failure in self.failures:
            if failure.identifier == identifier:
                return failure
        return None


async def gather_partial(
    operations: Mapping[Hashable, Awaitable[Any]],
    operation_type: str = "operation",
) -> PartialResult:
    """
    Execute async operations concurrently and collect partial results.

    Every operation is awaited until it settles; a failing operation never
    cancels the others. If the caller is cancelled, the pending operations
    are cancelled with it and nothing is returned.

    Parameters
    ----------
    operations : Mapping[Hashable, Awaitable[Any]]
        Mapping from identifiers to async operations
    operation_type : str
        Human-readable type of operation (for logging)

    Returns
    -------
    PartialResult
        Container with successes and failures

    Raises
    ------
    ValueError
        If operations mapping is empty
    asyncio.CancelledError
        If the caller is cancelled before every operation settled
    """
    if not operations:
        raise ValueError("operations dictionary cannot be empty")

    results = PartialResult()

    tasks: Dict[Hashable, "asyncio.Task[Any]"] = {
        identifier: asyncio.ensure_future(operation)
        for identifier, operation in operations.items()
    }

    try:
        completed = await asyncio.gather(*tasks.values(), return_exceptions=True)
    except asyncio.CancelledError:
        for task in tasks.values():
            task.cancel()
        raise

    for identifier, result in zip(tasks.keys(), completed):
        if isinstance(result, asyncio.CancelledError):
            # A single operation cancelled from outside counts as a failure.
            result = QueryExecutionFailure("operation cancelled")
        if isinstance(result, Exception):
            error_type = classify_error(result)
            retryable = is_retryable(error_type, result)
            results.failures.append(
                FailureInfo(
                    identifier=identifier,
                    error=str(result) or type(result).__name__,
                    error_type=error_type,
                    retryable=retryable,
                    exception=result,
                )
            )
            logger.warning(
                f"partial_results.{operation_type}.failed",
                extra={
                    "identifier": str(identifier),
                    "error_type": error_type,
                    "retryable": retryable,
                    "error": str(result),
                },
            )
        else:
            results.successes[identifier] = result

    logger.info(
        f"partial_results.{operation_type}.complete",
        extra={
            "total": len(operations),
            "successes": len(results.successes),
            "failures": len(results.failures),
            "success_rate": results.success_rate,
        },
    )
    return results


def classify_error(exc: BaseException) -> str:
    """Classify exception into error type."""
    error_type = "unknown_error"

    if isinstance(exc, QueryExecutionFailure) and exc.status_code is not None:
        error_type = _classify_status(exc.status_code)
    elif isinstance(exc, KafkaViewError):
        error_type = exc.error_type
    elif isinstance(exc, httpx.HTTPStatusError):
        error_type = _classify_status(exc.response.status_code)
    elif isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        error_type = "timeout"
    elif isinstance(exc, httpx.ConnectError):
        error_type = "connection_error"
    elif isinstance(exc, ValueError):
        error_type = "parse_error"
    elif isinstance(exc, KeyError):
        error_type = "missing_field"

    return error_type


def _classify_status(status: int) -> str:
    if status >= 500:
        return "server_error"
    if status == 429:
        return "rate_limit"
    if status in (401, 403):
        return "auth_error"
    if status == 404:
        return "not_found"
    return "http_error"


def is_retryable(error_type: str, exc: Optional[BaseException] = None) -> bool:
    """Determine if an error is retryable."""
    if isinstance(exc, QueryExecutionFailure) and exc.retryable:
        return True
    return error_type in _RETRYABLE_TYPES


def format_failure_summary(
    result: PartialResult, operation_type: str = "operation"
) -> str:
    """
    Format a human-readable summary of partial result failures.

    Parameters
    ----------
    result : PartialResult
        The partial result to summarize
    operation_type : str
        Type of operation (for messaging)

    Returns
    -------
    str
        Formatted summary string
    """
    if not result.has_failures:
        return f"All {len(result.successes)} {operation_type}(s) succeeded."

    lines = [
        f"Partial results: {len(result.successes)} succeeded, "
        f"{len(result.failures)} failed ({result.success_rate:.1%} success rate)",
    ]

    failures_by_type: Dict[str, List[FailureInfo]] = {}
    for failure in result.failures:
        failures_by_type.setdefault(failure.error_type, []).append(failure)

    for error_type, failures in failures_by_type.items():
        retry_note = " (retryable)" if failures[0].retryable else " (not retryable)"
        lines.append(f"  - {len(failures)} {error_type}{retry_note}")
        identifiers = [str(f.identifier) for f in failures[:3]]
        if len(failures) > 3:
            identifiers.append(f"... and {len(failures) - 3} more")
        lines.append(f"    Affected: {', '.join(identifiers)}")

    return "\n".join(lines)
