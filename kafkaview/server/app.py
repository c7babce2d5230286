"""Overview orchestration service.

This module wires the pure pipeline (builder, composer, normalizer, evaluator,
assembler) to an asynchronous query executor. One task runs per active
provider; a failing or slow provider degrades only its own contribution.
Sessions track request generations so that a superseded request is cancelled
and its late result never replaces a newer one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..adapters import OverviewBackend
from ..config.models import AppConfig
from ..domain.errors import (
    ExecutorNotConfigured,
    TemplateNotFound,
    UnsupportedAttribute,
)
from ..domain.health import HealthEvaluator
from ..domain.models import (
    AggregationMode,
    EntityType,
    NormalizedEntity,
    OverviewRequest,
    ProviderId,
)
from ..domain.normalize import ResultNormalizer
from ..domain.providers import default_registry
from ..domain.registry import ProviderRegistry
from ..domain.table import AssembledTable, ProviderError, ProviderResult, TableAssembler
from ..query.builder import QuerySpecBuilder
from ..query.entity_search import entity_search_predicate
from ..utils.correlation import get_request_id, new_request_id
from ..utils.cache import Cache
from ..utils.partial_results import (
    PartialResult,
    format_failure_summary,
    gather_partial,
)

logger = logging.getLogger(__name__)


@dataclass
class OverviewResult:
    """Outcome of one overview request.

    Attributes
    ----------
    request: OverviewRequest
        The request that produced the table.
    table: AssembledTable
        Merged rows and per-provider error flags.
    queries: Dict[ProviderId, str]
        Rendered query per provider that was dispatched.
    generation: int
        Session generation the result belongs to; 0 outside a session.
    request_id: str
        Correlation id of the request.
    """

    request: OverviewRequest
    table: AssembledTable
    queries: Dict[ProviderId, str] = field(default_factory=dict)
    generation: int = 0
    request_id: str = ""


@dataclass
class QueryPlan:
    """Rendered queries for a request, without execution."""

    queries: Dict[ProviderId, str] = field(default_factory=dict)
    provider_errors: Dict[ProviderId, ProviderError] = field(default_factory=dict)


def _provider_error(provider_id: ProviderId, exc: Exception) -> ProviderError:
    if isinstance(exc, UnsupportedAttribute):
        return ProviderError(
            provider_id=provider_id,
            error_type="unsupported_filter",
            message=str(exc),
        )
    return ProviderError.from_exception(provider_id, exc)


class OverviewService:
    """Run overview requests across providers.

    Parameters
    ----------
    registry: Optional[ProviderRegistry]
        Provider catalog; the built-in registry when omitted.
    executor: Optional[OverviewBackend]
        Query executor and entity search backend. Without one only
        :meth:`plan` is available.
    config: Optional[AppConfig]
        Enabled providers, default account scopes and session limits.
        Sessions live in an LRU cache; an evicted session is dropped
        without cancelling its request.
    """

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        executor: Optional[OverviewBackend] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._registry = registry or default_registry()
        self._executor = executor
        self._config = config or AppConfig()
        self._builder = QuerySpecBuilder(self._registry)
        self._normalizer = ResultNormalizer(self._registry)
        self._evaluator = HealthEvaluator(self._registry)
        self._sessions: Cache[str, OverviewSession] = Cache(
            maxsize=self._config.max_sessions,
            ttl_seconds=self._config.session_ttl_seconds,
        )
        self._started = False

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def executor(self) -> Optional[OverviewBackend]:
        return self._executor

    async def start(self) -> None:
        """Mark the service as started. Idempotent."""
        if self._started:
            logger.debug("service.start no-op: already started")
            return
        self._started = True
        self._registry.log_registry_status()
        logger.info("service.started")

    async def stop(self) -> None:
        """Cancel in-flight session requests and drop the sessions. Idempotent."""
        if not self._started:
            logger.debug("service.stop no-op: not started")
            return
        for session in self._sessions.values():
            await session.cancel()
        self._sessions.clear()
        self._started = False
        logger.info("service.stopped")

    # ------------------------------------------------------------------
    # Request resolution
    # ------------------------------------------------------------------

    def enabled_providers(self) -> List[ProviderId]:
        """Registered providers the configuration leaves enabled."""
        return self._config.enabled_providers(list(self._registry.provider_ids()))

    def active_providers(self, request: OverviewRequest) -> List[ProviderId]:
        """Providers a request runs against, in dispatch order.

        Raises
        ------
        UnknownProvider
            If the request names a provider that is not registered.
        """
        if not request.providers:
            return self.enabled_providers()
        active: List[ProviderId] = []
        for provider_id in request.providers:
            self._registry.describe(provider_id)
            if provider_id not in active:
                active.append(provider_id)
        return active

    def account_scope(
        self, provider_id: ProviderId, request: OverviewRequest
    ) -> List[str]:
        """Request scope, else configured scope, else empty (discover)."""
        scope = request.account_ids.get(provider_id)
        if scope:
            return list(dict.fromkeys(scope))
        return self._config.account_ids_for(provider_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def plan(self, request: OverviewRequest) -> QueryPlan:
        """Render the query every active provider would run.

        Providers with no template for the request, or without a mapping for
        one of its filters, are reported in ``provider_errors`` instead.
        """
        plan = QueryPlan()
        for provider_id in self.active_providers(request):
            try:
                spec = self._builder.build_request(
                    provider_id, request, self.account_scope(provider_id, request)
                )
            except (TemplateNotFound, UnsupportedAttribute) as exc:
                plan.provider_errors[provider_id] = _provider_error(provider_id, exc)
                continue
            plan.queries[provider_id] = spec.render()
        return plan

    async def discover_accounts(
        self, provider_id: ProviderId, entity_type: EntityType
    ) -> List[str]:
        """Accounts owning entities of ``entity_type`` for one provider."""
        executor = self._require_executor()
        predicate = entity_search_predicate(
            [self._registry.describe(provider_id)], entity_type
        )
        result = await executor.search_entities(predicate)
        logger.debug(
            "overview.accounts.discovered",
            extra={
                "req_id": get_request_id(),
                "provider": provider_id.value,
                "accounts": len(result.accounts),
            },
        )
        return list(result.accounts)

    async def discover_all(
        self,
        entity_type: EntityType,
        providers: Sequence[ProviderId] = (),
    ) -> Tuple[Dict[ProviderId, List[str]], Dict[ProviderId, ProviderError]]:
        """Discover accounts for several providers concurrently."""
        self._require_executor()
        targets = list(providers) or self.enabled_providers()
        errors: Dict[ProviderId, ProviderError] = {}
        operations = {}
        for provider_id in targets:
            descriptor = self._registry.describe(provider_id)
            if entity_type not in descriptor.entity_type_names:
                errors[provider_id] = ProviderError(
                    provider_id=provider_id,
                    error_type="unsupported_entity_type",
                    message=(
                        f"{descriptor.display_name} has no "
                        f"{entity_type.value} entities"
                    ),
                )
                continue
            operations[provider_id] = self.discover_accounts(provider_id, entity_type)
        accounts: Dict[ProviderId, List[str]] = {}
        if operations:
            results = await gather_partial(operations, "discovery")
            accounts.update(results.successes)
            for failure in results.failures:
                errors[failure.identifier] = ProviderError(
                    provider_id=failure.identifier,
                    error_type=failure.error_type,
                    message=failure.error,
                    retryable=failure.retryable,
                )
        return accounts, errors

    async def _fetch(
        self, provider_id: ProviderId, request: OverviewRequest
    ) -> Tuple[str, List[NormalizedEntity]]:
        executor = self._require_executor()
        scope = self.account_scope(provider_id, request)
        if not scope:
            scope = await self.discover_accounts(provider_id, request.entity_type)
        spec = self._builder.build_request(provider_id, request, scope)
        query = spec.render()
        if not scope:
            logger.info(
                "overview.provider.no_accounts",
                extra={"req_id": get_request_id(), "provider": provider_id.value},
            )
            return query, []
        rows = await executor.run_query(query, scope)
        entities = self._normalizer.normalize(
            provider_id,
            request.entity_type,
            rows,
            group_by=request.group_by,
            account_scope=scope,
        )
        if request.aggregation_mode is AggregationMode.HEALTH:
            entities = self._evaluator.classify(entities)
        return query, entities

    async def overview(
        self, request: OverviewRequest, *, generation: int = 0
    ) -> OverviewResult:
        """Run one overview request and assemble the merged table.

        Every provider settles (success or failure) before assembly. A
        provider lacking a template or a filter attribute is flagged without
        being queried.

        Raises
        ------
        UnknownProvider
            If the request names an unregistered provider.
        ExecutorNotConfigured
            If no executor is available.
        """
        self._require_executor()
        request_id = get_request_id() or new_request_id()
        providers = self.active_providers(request)
        results: Dict[ProviderId, ProviderResult] = {}
        operations = {}
        for provider_id in providers:
            try:
                self._builder.build_request(provider_id, request)
            except (TemplateNotFound, UnsupportedAttribute) as exc:
                results[provider_id] = _provider_error(provider_id, exc)
                continue
            results[provider_id] = []
            operations[provider_id] = self._fetch(provider_id, request)

        logger.info(
            "overview.dispatch",
            extra={
                "req_id": request_id,
                "generation": generation,
                "entity_type": request.entity_type.value,
                "mode": request.aggregation_mode.value,
                "providers": [p.value for p in operations],
            },
        )

        gathered = (
            await gather_partial(operations, "overview")
            if operations
            else PartialResult()
        )
        queries: Dict[ProviderId, str] = {}
        for provider_id in operations:
            if provider_id in gathered.successes:
                query, entities = gathered.successes[provider_id]
                queries[provider_id] = query
                results[provider_id] = entities
                continue
            failure = gathered.failure_for(provider_id)
            if failure is not None and failure.exception is not None:
                results[provider_id] = _provider_error(
                    provider_id, failure.exception  # type: ignore[arg-type]
                )
                logger.warning(
                    "overview.provider.failed",
                    extra={
                        "req_id": request_id,
                        "provider": provider_id.value,
                        "error_type": failure.error_type,
                    },
                )

        if gathered.has_failures:
            logger.log(
                logging.ERROR if gathered.all_failed else logging.WARNING,
                "overview.partial",
                extra={
                    "req_id": request_id,
                    "summary": format_failure_summary(gathered, "provider query"),
                },
            )

        group_key = request.group_by.value if request.group_by else None
        table = TableAssembler(group_key=group_key).assemble(results)
        return OverviewResult(
            request=request,
            table=table,
            queries=queries,
            generation=generation,
            request_id=request_id,
        )

    def session(self, session_id: str) -> "OverviewSession":
        """Return the session for ``session_id``, creating it on first use."""
        session = self._sessions.get(session_id)
        if session is None:
            session = OverviewSession(self, session_id)
            self._sessions.set(session_id, session)
        return session

    async def refresh(self, request: OverviewRequest) -> Optional[OverviewResult]:
        """Run ``request`` in the default session, superseding its last one."""
        return await self.session("default").refresh(request)

    def _require_executor(self) -> OverviewBackend:
        if self._executor is None:
            raise ExecutorNotConfigured()
        return self._executor


class OverviewSession:
    """Generation tracking for one client's successive requests.

    Each :meth:`refresh` increments the generation and cancels the request
    still in flight. A result whose generation is no longer current is
    dropped: the caller receives ``None`` and :attr:`latest` keeps the newer
    result.
    """

    def __init__(self, service: OverviewService, session_id: str) -> None:
        self._service = service
        self.session_id = session_id
        self._generation = 0
        self._inflight: Optional["asyncio.Task[OverviewResult]"] = None
        self.latest: Optional[OverviewResult] = None

    @property
    def generation(self) -> int:
        return self._generation

    async def refresh(self, request: OverviewRequest) -> Optional[OverviewResult]:
        self._generation += 1
        generation = self._generation
        previous = self._inflight
        if previous is not None and not previous.done():
            previous.cancel()
            logger.info(
                "overview.superseded",
                extra={"session": self.session_id, "generation": generation - 1},
            )

        task = asyncio.ensure_future(
            self._service.overview(request, generation=generation)
        )
        self._inflight = task
        try:
            result = await task
        except asyncio.CancelledError:
            if task.cancelled() and generation != self._generation:
                logger.info(
                    "overview.stale_dropped",
                    extra={"session": self.session_id, "generation": generation},
                )
                return None
            raise
        finally:
            if self._inflight is task:
                self._inflight = None

        if generation != self._generation:
            logger.info(
                "overview.stale_dropped",
                extra={"session": self.session_id, "generation": generation},
            )
            return None
        self.latest = result
        return result

    async def cancel(self) -> None:
        """Cancel the in-flight request, if any, and wait for it to unwind."""
        task = self._inflight
        if task is None or task.done():
            return
        self._generation += 1
        task.cancel()
        await asyncio.wait([task])
