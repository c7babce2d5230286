"""Declarative provider definitions and the default registry.

Each provider module exposes a ``DEFINITION`` table (descriptor, templates,
health rules). The default registry is assembled from these tables once; it
never grows at import time. Adding a provider means adding a module and a
line to :func:`default_definitions`, without touching existing providers.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterable, Optional, Tuple

from ..models import ProviderId
from ..registry import ProviderDefinition, ProviderRegistry
from . import aws_msk, confluent_cloud, kafka_agent, metric_stream

logger = logging.getLogger(__name__)


def default_definitions() -> Tuple[ProviderDefinition, ...]:
    """All built-in provider definitions, in display order."""
    return (
        aws_msk.DEFINITION,
        metric_stream.DEFINITION,
        confluent_cloud.DEFINITION,
        kafka_agent.DEFINITION,
    )


def build_registry(
    enabled: Optional[Iterable[ProviderId]] = None,
) -> ProviderRegistry:
    """Build a registry from the built-in definitions.

    Parameters
    ----------
    enabled: Optional[Iterable[ProviderId]]
        When given, only these providers are registered. ``None`` registers
        every built-in provider.
    """
    keep = None if enabled is None else {ProviderId(p) for p in enabled}
    definitions = [
        d
        for d in default_definitions()
        if keep is None or d.descriptor.provider_id in keep
    ]
    registry = ProviderRegistry.from_definitions(
        definitions, metric_stream_templates=metric_stream.TEMPLATES
    )
    logger.debug(
        "providers.registry.built",
        extra={"providers": [p.value for p in registry.provider_ids()]},
    )
    return registry


@lru_cache(maxsize=1)
def default_registry() -> ProviderRegistry:
    """Process-wide registry of every built-in provider."""
    return build_registry()
