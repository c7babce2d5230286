"""Self-hosted Kafka through the on-host agent integration.

The agent reports one ``KafkaBrokerSample`` per broker, including per-topic
rates. Cluster and topic rows are therefore re-aggregated from per-broker
samples: the controller gauge is 1 on exactly one healthy broker, so the
cluster value is the sum across brokers. Older agent versions report the
cluster as ``clusterName`` instead of ``kafka.cluster.name``.
"""

from __future__ import annotations

from ...query.spec import MAX_LIMIT, QuerySpec
from ...query.templates import columns
from ..health import CLUSTER_RULES, TOPIC_RULES, UNDER_REPLICATED_PRESENT, HealthRuleSet
from ..models import (
    ACCOUNT_ID,
    ACTIVE_CONTROLLERS,
    BROKER_ID,
    BYTES_IN,
    BYTES_OUT,
    CLUSTER_NAME,
    MESSAGES_IN,
    OFFLINE_PARTITIONS,
    TOPIC_NAME,
    UNDER_REPLICATED_PARTITIONS,
    AggregationMode,
    EntityType,
    GroupBy,
    ProviderId,
)
from ..registry import ProviderDefinition, ProviderDescriptor, TemplateKey

ATTRIBUTES = {
    CLUSTER_NAME: ("kafka.cluster.name", "clusterName"),
    BROKER_ID: ("broker.id", "brokerId"),
    TOPIC_NAME: ("topic",),
    ACCOUNT_ID: ("accountId",),
    BYTES_IN: ("broker.IOInPerSecond", "topic.bytesInPerSecond"),
    BYTES_OUT: ("broker.IOOutPerSecond", "topic.bytesOutPerSecond"),
    MESSAGES_IN: ("broker.messagesInPerSecond", "topic.messagesInPerSecond"),
    ACTIVE_CONTROLLERS: ("controller.activeControllerCount",),
    OFFLINE_PARTITIONS: ("replication.offlinePartitionsCount",),
    UNDER_REPLICATED_PARTITIONS: ("replication.unreplicatedPartitions",),
    GroupBy.ENVIRONMENT.value: ("environment",),
}

DESCRIPTOR = ProviderDescriptor(
    provider_id=ProviderId.KAFKA_AGENT,
    display_name="Kafka (on-host agent)",
    entity_type_names={
        EntityType.CLUSTER: "ONHOSTKAFKACLUSTER",
        EntityType.BROKER: "KAFKABROKER",
        EntityType.TOPIC: "KAFKATOPIC",
    },
    attribute_map=ATTRIBUTES,
)

_CLUSTER = ATTRIBUTES[CLUSTER_NAME]
_BROKER = ATTRIBUTES[BROKER_ID]
_TOPIC = ATTRIBUTES[TOPIC_NAME]
_ACCOUNT = ATTRIBUTES[ACCOUNT_ID]
_ENVIRONMENT = ATTRIBUTES[GroupBy.ENVIRONMENT.value]
_STATE = (
    ATTRIBUTES[ACTIVE_CONTROLLERS]
    + ATTRIBUTES[OFFLINE_PARTITIONS]
    + ATTRIBUTES[UNDER_REPLICATED_PARTITIONS]
)
_BROKER_TRAFFIC = (
    ATTRIBUTES[BYTES_IN][0],
    ATTRIBUTES[BYTES_OUT][0],
    ATTRIBUTES[MESSAGES_IN][0],
)
_TOPIC_TRAFFIC = (
    ATTRIBUTES[BYTES_IN][1],
    ATTRIBUTES[BYTES_OUT][1],
    ATTRIBUTES[MESSAGES_IN][1],
)


def _per_broker(function: str, names: tuple, *facets: str) -> QuerySpec:
    return QuerySpec(
        select=columns(function, names),
        source="KafkaBrokerSample",
        facet_by=_CLUSTER + _BROKER + facets + _ACCOUNT,
        limit=MAX_LIMIT,
    )


def _cluster_health(*group: str) -> QuerySpec:
    return QuerySpec(
        select=columns("sum", _STATE),
        source=_per_broker("latest", _STATE, *group),
        facet_by=_CLUSTER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


def _cluster_throughput(*group: str) -> QuerySpec:
    return QuerySpec(
        select=columns("sum", _BROKER_TRAFFIC, or_zero=True),
        source=_per_broker("average", _BROKER_TRAFFIC, *group),
        facet_by=_CLUSTER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


def _broker(function: str, names: tuple, *, or_zero: bool = False) -> QuerySpec:
    return QuerySpec(
        select=columns(function, names, or_zero=or_zero),
        source="KafkaBrokerSample",
        facet_by=_CLUSTER + _BROKER + _ACCOUNT,
        limit=MAX_LIMIT,
    )


def _topic(inner_function: str, *, or_zero: bool = False) -> QuerySpec:
    inner = _per_broker(inner_function, _TOPIC_TRAFFIC, *_TOPIC)
    return QuerySpec(
        select=columns("sum", _TOPIC_TRAFFIC, or_zero=or_zero),
        source=inner.with_predicates("topic IS NOT NULL"),
        facet_by=_CLUSTER + _TOPIC + _ACCOUNT,
        limit=MAX_LIMIT,
    )


_HEALTH = AggregationMode.HEALTH
_THROUGHPUT = AggregationMode.THROUGHPUT

TEMPLATES = {
    TemplateKey(EntityType.CLUSTER, _HEALTH): _cluster_health(),
    TemplateKey(EntityType.CLUSTER, _HEALTH, GroupBy.ENVIRONMENT): _cluster_health(
        *_ENVIRONMENT
    ),
    TemplateKey(EntityType.CLUSTER, _THROUGHPUT): _cluster_throughput(),
    TemplateKey(
        EntityType.CLUSTER, _THROUGHPUT, GroupBy.ENVIRONMENT
    ): _cluster_throughput(*_ENVIRONMENT),
    TemplateKey(EntityType.BROKER, _HEALTH): _broker(
        "latest", ATTRIBUTES[UNDER_REPLICATED_PARTITIONS] + _BROKER_TRAFFIC
    ),
    TemplateKey(EntityType.BROKER, _THROUGHPUT): _broker(
        "average", _BROKER_TRAFFIC, or_zero=True
    ),
    TemplateKey(EntityType.TOPIC, _HEALTH): _topic("latest"),
    TemplateKey(EntityType.TOPIC, _THROUGHPUT): _topic("average", or_zero=True),
}

DEFINITION = ProviderDefinition(
    descriptor=DESCRIPTOR,
    templates=TEMPLATES,
    health_rules={
        EntityType.CLUSTER: CLUSTER_RULES,
        EntityType.BROKER: HealthRuleSet(
            required=(UNDER_REPLICATED_PARTITIONS, BYTES_IN, BYTES_OUT),
            checks=(UNDER_REPLICATED_PRESENT,),
        ),
        EntityType.TOPIC: TOPIC_RULES,
    },
)
