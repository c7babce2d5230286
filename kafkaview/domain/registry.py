"""Read-only catalog of providers, templates and health rules.

The registry is assembled once, at construction, from declarative provider
definitions (see :mod:`kafkaview.domain.providers`). Nothing registers itself
at import time and nothing mutates the registry afterwards; request handling
only reads from it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..query.spec import QuerySpec
from .errors import UnknownProvider, UnsupportedAttribute
from .health import HealthRuleSet
from .models import AggregationMode, EntityType, GroupBy, ProviderId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateKey:
    """Explicit template selector.

    Grouped and ungrouped variants are distinct keys; a grouped template is
    never derived from the ungrouped one at request time.
    """

    entity_type: EntityType
    aggregation_mode: AggregationMode
    group_by: Optional[GroupBy] = None


class ProviderDescriptor(BaseModel):
    """Identity and naming of one provider.

    Attributes
    ----------
    provider_id: ProviderId
        Stable provider identifier.
    display_name: str
        Human-readable provider name.
    entity_type_names: Dict[EntityType, str]
        Backend entity-type name per supported entity type.
    attribute_map: Dict[str, Tuple[str, ...]]
        Logical attribute name to ordered backend attribute candidates; the
        first non-null candidate wins.
    uses_metric_stream: bool
        Selects the metric-stream template family instead of the provider's
        own dimensional family.
    entity_domain: str
        Entity search domain of the provider's entities.
    """

    model_config = ConfigDict(frozen=True)

    provider_id: ProviderId
    display_name: str
    entity_type_names: Dict[EntityType, str]
    attribute_map: Dict[str, Tuple[str, ...]]
    uses_metric_stream: bool = False
    entity_domain: str = "INFRA"


@dataclass(frozen=True)
class ProviderDefinition:
    """Declarative table a provider module contributes to the registry."""

    descriptor: ProviderDescriptor
    health_rules: Mapping[EntityType, HealthRuleSet]
    templates: Mapping[TemplateKey, QuerySpec] = field(default_factory=dict)


class ProviderRegistry:
    """Immutable provider catalog.

    Use :meth:`from_definitions` to build one; the constructor expects
    already-validated mappings.
    """

    def __init__(
        self,
        definitions: Mapping[ProviderId, ProviderDefinition],
        metric_stream_templates: Mapping[TemplateKey, QuerySpec],
    ) -> None:
        self._definitions = MappingProxyType(dict(definitions))
        self._stream_templates = MappingProxyType(dict(metric_stream_templates))

    @classmethod
    def from_definitions(
        cls,
        definitions: Iterable[ProviderDefinition],
        metric_stream_templates: Optional[Mapping[TemplateKey, QuerySpec]] = None,
    ) -> "ProviderRegistry":
        """Validate provider definitions and build the registry.

        Raises
        ------
        ValueError
            If a provider is defined twice, if a dimensional provider has no
            templates of its own, if a metric-stream provider carries its own
            templates, or if a provider registers no health rules.
        """
        table: Dict[ProviderId, ProviderDefinition] = {}
        for definition in definitions:
            pid = definition.descriptor.provider_id
            if pid in table:
                raise ValueError(f"provider {pid.value} defined twice")
            if definition.descriptor.uses_metric_stream:
                if definition.templates:
                    raise ValueError(
                        f"metric-stream provider {pid.value} must use the shared "
                        "metric-stream template family"
                    )
            elif not definition.templates:
                raise ValueError(f"provider {pid.value} defines no query templates")
            if not definition.health_rules:
                raise ValueError(f"provider {pid.value} defines no health rules")
            table[pid] = definition
        stream_templates = dict(metric_stream_templates or {})
        if not stream_templates and any(
            d.descriptor.uses_metric_stream for d in table.values()
        ):
            raise ValueError("metric-stream providers need metric-stream templates")
        return cls(table, stream_templates)

    def _definition(self, provider_id: ProviderId) -> ProviderDefinition:
        try:
            return self._definitions[ProviderId(provider_id)]
        except (KeyError, ValueError):
            raise UnknownProvider(provider_id) from None

    def provider_ids(self) -> Tuple[ProviderId, ...]:
        """Registered providers in registration order."""
        return tuple(self._definitions.keys())

    def describe(self, provider_id: ProviderId) -> ProviderDescriptor:
        """Return the descriptor of ``provider_id``.

        Raises
        ------
        UnknownProvider
            If the identifier is not registered.
        """
        return self._definition(provider_id).descriptor

    def resolve_attribute(
        self, provider_id: ProviderId, logical_name: str
    ) -> Tuple[str, ...]:
        """Return the ordered backend candidates for a logical attribute.

        Raises
        ------
        UnknownProvider
            If the identifier is not registered.
        UnsupportedAttribute
            If the provider has no mapping for ``logical_name``.
        """
        descriptor = self.describe(provider_id)
        candidates = descriptor.attribute_map.get(logical_name)
        if not candidates:
            raise UnsupportedAttribute(descriptor.provider_id, logical_name)
        return tuple(candidates)

    def templates_for(
        self, provider_id: ProviderId
    ) -> Mapping[TemplateKey, QuerySpec]:
        """Dimensional template family of one provider."""
        return MappingProxyType(dict(self._definition(provider_id).templates))

    def metric_stream_templates(self) -> Mapping[TemplateKey, QuerySpec]:
        """Template family shared by every metric-stream provider."""
        return self._stream_templates

    def health_rules(
        self, provider_id: ProviderId, entity_type: EntityType
    ) -> Optional[HealthRuleSet]:
        """Rule set for an entity type, or None when the provider has none."""
        return self._definition(provider_id).health_rules.get(entity_type)

    def log_registry_status(self) -> None:
        """Log the registered providers and their template counts."""
        if not self._definitions:
            logger.warning("No providers registered. Overview tables will be empty.")
            return
        summary = []
        for pid, definition in self._definitions.items():
            if definition.descriptor.uses_metric_stream:
                summary.append(f"'{pid.value}' (metric stream)")
            else:
                summary.append(f"'{pid.value}' ({len(definition.templates)} templates)")
        logger.info("Providers registered: %s", ", ".join(summary))
