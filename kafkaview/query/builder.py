"""Select and compose provider query templates for a logical request."""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from ..domain.errors import TemplateNotFound
from ..domain.models import (
    AggregationMode,
    EntityType,
    GroupBy,
    OverviewRequest,
    ProviderId,
)
from ..domain.registry import ProviderDescriptor, ProviderRegistry, TemplateKey
from .filters import FilterComposer, account_scope_filter
from .spec import QuerySpec

logger = logging.getLogger(__name__)


class QuerySpecBuilder:
    """Build one :class:`QuerySpec` per provider from registry templates.

    Parameters
    ----------
    registry: ProviderRegistry
        Read-only provider catalog.
    composer: Optional[FilterComposer]
        Filter composer used for account scope and user filters.
    """

    def __init__(
        self, registry: ProviderRegistry, composer: Optional[FilterComposer] = None
    ) -> None:
        self._registry = registry
        self._composer = composer or FilterComposer(registry)

    def _family(
        self, descriptor: ProviderDescriptor
    ) -> Mapping[TemplateKey, QuerySpec]:
        # Metric-stream ingestion shapes rows differently from dimensional
        # samples, so it selects its own family before the provider does.
        if descriptor.uses_metric_stream:
            return self._registry.metric_stream_templates()
        return self._registry.templates_for(descriptor.provider_id)

    def template(
        self,
        provider_id: ProviderId,
        entity_type: EntityType,
        aggregation_mode: AggregationMode,
        group_by: Optional[GroupBy] = None,
    ) -> QuerySpec:
        """Look up the registered template for one combination.

        Raises
        ------
        UnknownProvider
            If ``provider_id`` is not registered.
        TemplateNotFound
            If the provider has no template for the combination.
        """
        descriptor = self._registry.describe(provider_id)
        key = TemplateKey(entity_type, aggregation_mode, group_by)
        spec = self._family(descriptor).get(key)
        if spec is None:
            raise TemplateNotFound(provider_id, entity_type, aggregation_mode, group_by)
        return spec

    def build(
        self,
        provider_id: ProviderId,
        entity_type: EntityType,
        aggregation_mode: AggregationMode,
        group_by: Optional[GroupBy] = None,
        account_scope: Optional[Sequence[str]] = None,
    ) -> QuerySpec:
        """Return a fresh query for one provider.

        ``account_scope`` is appended to the innermost ``where`` as an
        ``accountId IN (...)`` clause; the template itself is untouched.
        """
        spec = self.template(provider_id, entity_type, aggregation_mode, group_by)
        if account_scope:
            descriptor = self._registry.describe(provider_id)
            clause = self._composer.compose(
                account_scope_filter(account_scope), descriptor
            )
            return spec.with_predicates(clause)
        return spec.model_copy()

    def build_request(
        self,
        provider_id: ProviderId,
        request: OverviewRequest,
        account_scope: Optional[Sequence[str]] = None,
    ) -> QuerySpec:
        """Build the query for one provider of an overview request.

        Applies the account scope, every active filter and the optional limit
        override.

        Raises
        ------
        UnsupportedAttribute
            If a filter names an attribute the provider does not expose.
        """
        spec = self.build(
            provider_id,
            request.entity_type,
            request.aggregation_mode,
            request.group_by,
            account_scope,
        )
        descriptor = self._registry.describe(provider_id)
        spec = spec.with_predicates(
            *self._composer.compose_all(request.filters, descriptor)
        )
        if request.limit is not None:
            spec = spec.with_limit(request.limit)
        logger.debug(
            "query.built",
            extra={
                "provider": descriptor.provider_id.value,
                "entity_type": request.entity_type.value,
                "mode": request.aggregation_mode.value,
                "nested": spec.is_nested,
            },
        )
        return spec
