"""Error taxonomy for the overview engine.

Each error carries enough context to be reported per provider. Only
``QueryExecutionFailure`` is transient; the others describe configuration
gaps or data-integrity problems and are never retried by this package.
"""

from __future__ import annotations

from typing import Optional, Tuple


class KafkaViewError(Exception):
    """Base class for all kafkaview errors.

    Attributes
    ----------
    error_type: str
        Stable machine-readable identifier used in per-provider error flags
        and HTTP error payloads.
    """

    error_type = "kafkaview_error"


class UnknownProvider(KafkaViewError, LookupError):
    """The provider identifier is not registered."""

    error_type = "unknown_provider"

    def __init__(self, provider_id: object) -> None:
        super().__init__(f"Unknown provider: {provider_id!r}")
        self.provider_id = provider_id


class UnsupportedAttribute(KafkaViewError, LookupError):
    """A provider has no mapping for a logical attribute.

    Callers treat this as "metric not available", never as an end-user error.
    """

    error_type = "unsupported_attribute"

    def __init__(self, provider_id: object, logical_name: str) -> None:
        super().__init__(
            f"Provider {provider_id!s} does not expose attribute {logical_name!r}"
        )
        self.provider_id = provider_id
        self.logical_name = logical_name


class TemplateNotFound(KafkaViewError, LookupError):
    """No query template exists for the requested combination."""

    error_type = "template_not_found"

    def __init__(
        self,
        provider_id: object,
        entity_type: object,
        aggregation_mode: object,
        group_by: object = None,
    ) -> None:
        combo = f"{entity_type!s}/{aggregation_mode!s}"
        if group_by is not None:
            combo += f" grouped by {group_by!s}"
        super().__init__(f"No query template for {provider_id!s}: {combo}")
        self.provider_id = provider_id
        self.entity_type = entity_type
        self.aggregation_mode = aggregation_mode
        self.group_by = group_by


class QueryExecutionFailure(KafkaViewError):
    """The external executor failed to run a query.

    Attributes
    ----------
    retryable: bool
        Whether the executor considered the failure transient.
    status_code: Optional[int]
        Upstream HTTP status when the failure came from a response.
    error_type: str
        "query_failed" unless the executor knows better (e.g., "timeout").
    """

    error_type = "query_failed"

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code
        if error_type:
            self.error_type = error_type


class DuplicateEntityIdentity(KafkaViewError):
    """Two rows share ``(provider_id, entity_type, account_id, name)``.

    Raised objects are recorded by the table assembler rather than thrown;
    the first-encountered row wins.
    """

    error_type = "duplicate_entity_identity"

    def __init__(self, identity: Tuple[str, str, str, str]) -> None:
        provider_id, entity_type, account_id, name = identity
        super().__init__(
            f"Duplicate {entity_type} {name!r} for provider {provider_id} "
            f"in account {account_id}"
        )
        self.identity = identity


class ExecutorNotConfigured(KafkaViewError):
    """An overview needs a query executor and none is configured."""

    error_type = "executor_not_configured"

    def __init__(self) -> None:
        super().__init__(
            "No query executor configured; only query plans are available"
        )
