"""Health classification rules and evaluator.

Classification is a pure function of one normalized entity and the rule set
its provider registered for the entity type. Rule sets are built from the
shared checks below; a provider composes the checks it can support and omits
the ones its backend does not report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, List, Tuple

from .models import (
    ACTIVE_CONTROLLERS,
    BYTES_IN,
    BYTES_OUT,
    MESSAGES_IN,
    OFFLINE_PARTITIONS,
    UNDER_REPLICATED_PARTITIONS,
    HealthStatus,
    NormalizedEntity,
)

if TYPE_CHECKING:
    from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthCheck:
    """A threshold test over one metric.

    The check only triggers when the metric is present; absence is handled by
    the rule set's ``required`` metrics, never by the check itself.
    """

    metric: str
    description: str
    predicate: Callable[[float], bool]

    def triggered(self, entity: NormalizedEntity) -> bool:
        value = entity.metric(self.metric)
        return value is not None and self.predicate(value)


@dataclass(frozen=True)
class HealthRuleSet:
    """Checks and required metrics for one provider and entity type.

    Attributes
    ----------
    required: Tuple[str, ...]
        When every one of these metrics is absent the entity is Unknown.
    checks: Tuple[HealthCheck, ...]
        Any triggered check makes the entity Unhealthy.
    """

    required: Tuple[str, ...]
    checks: Tuple[HealthCheck, ...] = ()

    def evaluate(self, entity: NormalizedEntity) -> HealthStatus:
        if any(check.triggered(entity) for check in self.checks):
            return HealthStatus.UNHEALTHY
        if all(entity.metric(name) is None for name in self.required):
            return HealthStatus.UNKNOWN
        return HealthStatus.HEALTHY

    def reasons(self, entity: NormalizedEntity) -> List[str]:
        """Descriptions of the checks that triggered for ``entity``."""
        return [check.description for check in self.checks if check.triggered(entity)]


ACTIVE_CONTROLLER_NOT_ONE = HealthCheck(
    ACTIVE_CONTROLLERS, "active controller count is not 1", lambda v: v != 1
)
OFFLINE_PARTITIONS_PRESENT = HealthCheck(
    OFFLINE_PARTITIONS, "offline partitions", lambda v: v > 0
)
UNDER_REPLICATED_PRESENT = HealthCheck(
    UNDER_REPLICATED_PARTITIONS, "under-replicated partitions", lambda v: v > 0
)
NO_BYTES_IN = HealthCheck(BYTES_IN, "no bytes in", lambda v: v == 0)
NO_BYTES_OUT = HealthCheck(BYTES_OUT, "no bytes out", lambda v: v == 0)

CLUSTER_RULES = HealthRuleSet(
    required=(ACTIVE_CONTROLLERS, OFFLINE_PARTITIONS, UNDER_REPLICATED_PARTITIONS),
    checks=(
        ACTIVE_CONTROLLER_NOT_ONE,
        OFFLINE_PARTITIONS_PRESENT,
        UNDER_REPLICATED_PRESENT,
    ),
)
TOPIC_RULES = HealthRuleSet(
    required=(BYTES_IN, BYTES_OUT),
    checks=(NO_BYTES_IN, NO_BYTES_OUT),
)
BROKER_RULES = HealthRuleSet(
    required=(UNDER_REPLICATED_PARTITIONS, BYTES_IN, BYTES_OUT, MESSAGES_IN),
    checks=(UNDER_REPLICATED_PRESENT,),
)
THROUGHPUT_ONLY_RULES = HealthRuleSet(required=(BYTES_IN, BYTES_OUT, MESSAGES_IN))
"""For backends that report traffic but no controller or partition state."""


class HealthEvaluator:
    """Classify normalized entities with their provider's rule sets.

    Parameters
    ----------
    registry: ProviderRegistry
        Source of the per-provider, per-entity-type rule sets.
    """

    def __init__(self, registry: "ProviderRegistry") -> None:
        self._registry = registry

    def evaluate(self, entity: NormalizedEntity) -> HealthStatus:
        """Return the health classification of one entity.

        Entities whose provider registered no rules for their type are
        Unknown rather than defaulting to Healthy.
        """
        rules = self._registry.health_rules(entity.provider_id, entity.entity_type)
        if rules is None:
            return HealthStatus.UNKNOWN
        return rules.evaluate(entity)

    def reasons(self, entity: NormalizedEntity) -> List[str]:
        """Explain an Unhealthy classification."""
        rules = self._registry.health_rules(entity.provider_id, entity.entity_type)
        return rules.reasons(entity) if rules is not None else []

    def classify(self, entities: Iterable[NormalizedEntity]) -> List[NormalizedEntity]:
        """Return copies of ``entities`` with ``health_status`` set."""
        classified = [
            entity.model_copy(update={"health_status": self.evaluate(entity)})
            for entity in entities
        ]
        logger.debug(
            "health.classified",
            extra={
                "entities": len(classified),
                "unhealthy": sum(
                    1 for e in classified if e.health_status is HealthStatus.UNHEALTHY
                ),
            },
        )
        return classified
