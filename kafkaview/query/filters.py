"""Translate user filters into provider-correct predicate clauses."""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from ..domain.models import ACCOUNT_ID, FilterOperator, FilterSpec
from ..domain.registry import ProviderDescriptor, ProviderRegistry
from .spec import quote_name, quote_value

logger = logging.getLogger(__name__)


class FilterComposer:
    """Compose :class:`FilterSpec` values against one provider's naming.

    The composer only shapes query text. Values are quoted but never checked
    against known entities; the query backend decides what matches.

    Parameters
    ----------
    registry: ProviderRegistry
        Resolves logical attributes to each provider's backend candidates.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    def compose(self, filter_spec: FilterSpec, descriptor: ProviderDescriptor) -> str:
        """Return a predicate clause, or ``""`` when the filter is a no-op.

        When the logical attribute has several backend candidates the clause
        tests all of them: ``(attrA OR attrB) IN ('v1', 'v2')``. Several
        values always compose as an ``IN`` set, even for single-value
        filters.

        Raises
        ------
        UnsupportedAttribute
            If the provider does not map ``filter_spec.entity_attribute``.
        """
        if not filter_spec.is_active:
            return ""
        candidates = self._registry.resolve_attribute(
            descriptor.provider_id, filter_spec.entity_attribute
        )
        if len(candidates) == 1:
            subject = quote_name(candidates[0])
        else:
            subject = "(" + " OR ".join(quote_name(c) for c in candidates) + ")"

        values = filter_spec.values
        if filter_spec.operator is FilterOperator.EQUALS and len(values) == 1:
            return f"{subject} = {quote_value(values[0])}"
        if len(values) > 1 and not filter_spec.multiple:
            logger.debug(
                "filters.single_value_overflow",
                extra={
                    "attribute": filter_spec.entity_attribute,
                    "values": len(values),
                },
            )
        return f"{subject} IN ({', '.join(quote_value(v) for v in values)})"

    def compose_all(
        self, filters: Iterable[FilterSpec], descriptor: ProviderDescriptor
    ) -> List[str]:
        """Compose several filters, dropping the ones that are no-ops."""
        clauses = (self.compose(f, descriptor) for f in filters)
        return [clause for clause in clauses if clause]


def account_scope_filter(account_ids: Sequence[str]) -> FilterSpec:
    """Filter restricting a query to the given accounts."""
    return FilterSpec(entity_attribute=ACCOUNT_ID, values=list(account_ids))
