"""HTTP request/response models for the overview API."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..domain.models import (
    AggregationMode,
    EntityType,
    GroupBy,
    OverviewRequest,
    ProviderId,
    TableRow,
)
from ..domain.table import ProviderError


class HealthResponse(BaseModel):
    """Simple health/readiness response model."""

    status: str


class ErrorResponse(BaseModel):
    """Structured JSON error response for HTTP endpoints.

    Fields
    ------
    detail: str
        Human-readable explanation of the error.
    error_type: str
        Machine-readable error classification.
    available_options: list[str] | None
        Optional list of valid options when the error is about an invalid
        input value (e.g., an unknown provider id).
    """

    detail: str = Field(..., description="Human-readable error detail")
    error_type: str = Field(..., description="Machine-readable error type")
    available_options: Optional[List[str]] = Field(
        default=None, description="Valid options for the rejected input"
    )


class ProviderCapability(BaseModel):
    """What one registered provider can serve."""

    provider_id: ProviderId
    display_name: str
    enabled: bool
    uses_metric_stream: bool
    entity_types: List[EntityType]
    aggregation_modes: List[AggregationMode]
    group_by: List[GroupBy]


class CapabilitiesResponse(BaseModel):
    """Server capabilities summary for diagnostics and clients."""

    version: str
    http_auth: str
    cors_origins: List[str]
    executor_configured: bool
    providers: List[ProviderCapability]


class OverviewHTTPRequest(OverviewRequest):
    """Overview request body.

    ``session_id`` ties successive requests from one client together: a new
    request supersedes the session's in-flight one, which then answers 409.
    """

    session_id: Optional[str] = Field(
        default=None, description="Client session for request supersession"
    )

    def to_domain(self) -> OverviewRequest:
        return OverviewRequest.model_validate(
            self.model_dump(exclude={"session_id"})
        )


class OverviewResponse(BaseModel):
    """Merged overview table."""

    request_id: str
    generation: int
    rows: List[TableRow]
    provider_errors: List[ProviderError]
    duplicates: List[List[str]] = Field(default_factory=list)
    queries: Dict[ProviderId, str] = Field(default_factory=dict)


class PlanResponse(BaseModel):
    """Rendered queries an overview request would run, without running them."""

    queries: Dict[ProviderId, str]
    provider_errors: List[ProviderError]


class AccountsResponse(BaseModel):
    """Accounts discovered through entity search, per provider."""

    entity_type: EntityType
    accounts: Dict[ProviderId, List[str]]
    provider_errors: List[ProviderError]
