"""Canonical domain data model shared by every provider.

These Pydantic models represent provider-agnostic entities, filters and table
rows. Provider definitions translate their backend naming into this model so
the builder, normalizer, evaluator and assembler can stay provider-neutral.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderId(str, Enum):
    """Closed set of supported Kafka monitoring providers."""

    AWS_MSK = "AWS_MSK"
    """Amazon MSK polled through the cloud integration (dimensional samples)."""

    AWS_MSK_METRIC_STREAM = "AWS_MSK_METRIC_STREAM"
    """Amazon MSK ingested through CloudWatch metric streams."""

    CONFLUENT_CLOUD = "CONFLUENT_CLOUD"
    """Confluent Cloud managed brokers."""

    KAFKA_AGENT = "KAFKA_AGENT"
    """Self-hosted Kafka monitored by the on-host agent integration."""


class EntityType(str, Enum):
    """Monitored Kafka object kinds."""

    CLUSTER = "Cluster"
    TOPIC = "Topic"
    BROKER = "Broker"


class AggregationMode(str, Enum):
    """Logical query shapes a template family can serve."""

    HEALTH = "health"
    """Latest health-relevant metrics per entity."""

    THROUGHPUT = "throughput"
    """Time-averaged byte and message rates per entity."""


class GroupBy(str, Enum):
    """Optional extra facet dimension for grouped template variants."""

    REGION = "region"
    ENVIRONMENT = "environment"


class HealthStatus(str, Enum):
    """Health classification of one entity."""

    HEALTHY = "Healthy"
    UNHEALTHY = "Unhealthy"
    UNKNOWN = "Unknown"


class FilterOperator(str, Enum):
    """Supported filter operators."""

    EQUALS = "equals"
    IN = "in"


# Logical attribute names. Identity attributes name an entity; metric
# attributes are numeric observations.
CLUSTER_NAME = "clusterName"
BROKER_ID = "brokerId"
TOPIC_NAME = "topicName"
ACCOUNT_ID = "accountId"
BYTES_IN = "bytesIn"
BYTES_OUT = "bytesOut"
MESSAGES_IN = "messagesIn"
ACTIVE_CONTROLLERS = "activeControllers"
OFFLINE_PARTITIONS = "offlinePartitions"
UNDER_REPLICATED_PARTITIONS = "underReplicatedPartitions"

IDENTITY_ATTRIBUTES: Tuple[str, ...] = (CLUSTER_NAME, BROKER_ID, TOPIC_NAME)
METRIC_ATTRIBUTES: Tuple[str, ...] = (
    BYTES_IN,
    BYTES_OUT,
    MESSAGES_IN,
    ACTIVE_CONTROLLERS,
    OFFLINE_PARTITIONS,
    UNDER_REPLICATED_PARTITIONS,
)

ENTITY_IDENTITY: Dict[EntityType, str] = {
    EntityType.CLUSTER: CLUSTER_NAME,
    EntityType.TOPIC: TOPIC_NAME,
    EntityType.BROKER: BROKER_ID,
}
"""Logical attribute that identifies an entity of each type."""


class FilterSpec(BaseModel):
    """User-selected filter over one logical attribute.

    Attributes
    ----------
    entity_attribute: str
        Logical attribute name (e.g., "clusterName").
    operator: FilterOperator
        Comparison operator. Several values always compose as an ``IN`` set.
    values: List[str]
        Ordered set of values; duplicates are dropped keeping the first.
    multiple: bool
        Whether the filter widget allows more than one value.
    """

    model_config = ConfigDict(frozen=True)

    entity_attribute: str
    operator: FilterOperator = FilterOperator.IN
    values: List[str] = Field(default_factory=list)
    multiple: bool = True

    @field_validator("values", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Any:
        # Broker ids arrive as JSON numbers.
        if isinstance(value, list):
            return [
                str(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else v
                for v in value
            ]
        return value

    @field_validator("values")
    @classmethod
    def _dedupe_values(cls, values: List[str]) -> List[str]:
        return list(dict.fromkeys(values))

    @property
    def is_active(self) -> bool:
        """An empty filter is equivalent to no filter at all."""
        return bool(self.values)


class NormalizedEntity(BaseModel):
    """One provider entity mapped onto the common attribute schema.

    Attributes
    ----------
    entity_type: EntityType
        Cluster, Topic or Broker.
    provider_id: ProviderId
        Provider that reported the entity.
    account_id: str
        Account the entity belongs to.
    name: str
        Display identity. Topics and brokers are qualified with their cluster
        (``"<clusterName>/<topic>"``) when the cluster is known.
    metrics: Dict[str, float]
        Logical metric name to value. Missing keys mean "not reported".
    attributes: Dict[str, str]
        Identity attributes and the group dimension value, if any.
    health_status: HealthStatus
        Set by the health evaluator; Unknown until classified.
    """

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    provider_id: ProviderId
    account_id: str
    name: str
    metrics: Dict[str, float] = Field(default_factory=dict)
    attributes: Dict[str, str] = Field(default_factory=dict)
    health_status: HealthStatus = HealthStatus.UNKNOWN

    @property
    def identity(self) -> Tuple[str, str, str, str]:
        """Key that makes two rows the same logical entity."""
        return (
            self.provider_id.value,
            self.entity_type.value,
            self.account_id,
            self.name,
        )

    def metric(self, name: str) -> Optional[float]:
        """Return a metric value or None when absent."""
        return self.metrics.get(name)


class TableRow(BaseModel):
    """One row of the merged overview table."""

    provider_id: ProviderId
    entity_type: EntityType
    account_id: str
    name: str
    health_status: HealthStatus
    metrics: Dict[str, float] = Field(default_factory=dict)
    group: Optional[str] = None

    @classmethod
    def from_entity(
        cls, entity: NormalizedEntity, group_key: Optional[str] = None
    ) -> "TableRow":
        """Build a row from a classified entity."""
        return cls(
            provider_id=entity.provider_id,
            entity_type=entity.entity_type,
            account_id=entity.account_id,
            name=entity.name,
            health_status=entity.health_status,
            metrics=dict(entity.metrics),
            group=entity.attributes.get(group_key) if group_key else None,
        )

    @property
    def identity(self) -> Tuple[str, str, str, str]:
        """Key that makes two rows the same logical entity."""
        return (
            self.provider_id.value,
            self.entity_type.value,
            self.account_id,
            self.name,
        )


class OverviewRequest(BaseModel):
    """Logical request for one overview table.

    Attributes
    ----------
    entity_type: EntityType
        Entity kind to list.
    aggregation_mode: AggregationMode
        Template shape to use.
    providers: List[ProviderId]
        Active providers; empty means every enabled provider.
    group_by: Optional[GroupBy]
        Extra facet dimension.
    account_ids: Dict[ProviderId, List[str]]
        Account scope per provider; missing providers fall back to
        configuration and then to entity search.
    filters: List[FilterSpec]
        User filters; inactive ones are ignored.
    limit: Optional[int]
        Row limit override applied to every provider query.
    """

    entity_type: EntityType = EntityType.CLUSTER
    aggregation_mode: AggregationMode = AggregationMode.HEALTH
    providers: List[ProviderId] = Field(default_factory=list)
    group_by: Optional[GroupBy] = None
    account_ids: Dict[ProviderId, List[str]] = Field(default_factory=dict)
    filters: List[FilterSpec] = Field(default_factory=list)
    limit: Optional[int] = Field(None, ge=1)
