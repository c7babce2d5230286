"""Query executor interfaces and registry."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field


class EntityRef(BaseModel):
    """One entity returned by entity search."""

    guid: str
    name: str
    account_id: str
    entity_type: str


class EntitySearchResult(BaseModel):
    """Entity search outcome.

    Attributes
    ----------
    accounts: List[str]
        Distinct account ids owning at least one matching entity, in order
        of first appearance.
    counts: Dict[str, int]
        Matching entity count per facet value (entity type).
    entities: List[EntityRef]
        Matching entities.
    """

    accounts: List[str] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)
    entities: List[EntityRef] = Field(default_factory=list)


class QueryExecutor(Protocol):
    """Protocol for backends that run rendered queries.

    Implementations return rows as mappings from column alias to value and
    raise :class:`~kafkaview.domain.errors.QueryExecutionFailure` on failure.
    """

    async def run_query(
        self, query: str, account_ids: Sequence[str]
    ) -> List[Dict[str, Any]]:
        """Run one query against the given accounts."""
        raise NotImplementedError


class EntitySearch(Protocol):
    """Protocol for backends that search monitored entities."""

    async def search_entities(self, predicate: str) -> EntitySearchResult:
        """Return the accounts and counts of entities matching ``predicate``."""
        raise NotImplementedError


class OverviewBackend(QueryExecutor, EntitySearch, Protocol):
    """A backend offering both query execution and entity search."""

    async def aclose(self) -> None:
        """Release transport resources."""
        raise NotImplementedError


DEFAULT_EXECUTOR = "default"

_executors: Dict[str, OverviewBackend] = {}


def register_executor(executor: OverviewBackend, name: str = DEFAULT_EXECUTOR) -> None:
    """Register an executor instance under ``name``."""
    _executors[name] = executor


def get_executor(name: str = DEFAULT_EXECUTOR) -> Optional[OverviewBackend]:
    """Retrieve a registered executor, or None when none is configured."""
    return _executors.get(name)


def log_executor_status() -> None:
    """Log which executors are configured."""
    logger = logging.getLogger(__name__)

    if not _executors:
        logger.warning(
            "No query executor configured. Only query plans are available; "
            "set KAFKAVIEW_CONFIG to a config file with an 'executor' section."
        )
        return
    logger.info(
        "Query executors configured: %s",
        ", ".join(f"'{name}' ({type(ex).__name__})" for name, ex in _executors.items()),
    )


def reset_executors() -> None:
    """Test-only helper to clear registered executors."""
    _executors.clear()
