"""Confluent Cloud through the metrics export integration.

Confluent exports cluster and topic metrics as dimensional ``Metric`` events
(``confluent.kafka.server.*``). Brokers are not exposed, and neither are
controller or partition-state metrics, so cluster health can only tell
whether traffic is being reported at all.
"""

from __future__ import annotations

from ...query.spec import MAX_LIMIT, QuerySpec
from ...query.templates import columns
from ..health import THROUGHPUT_ONLY_RULES, TOPIC_RULES
from ..models import (
    ACCOUNT_ID,
    BYTES_IN,
    BYTES_OUT,
    CLUSTER_NAME,
    MESSAGES_IN,
    TOPIC_NAME,
    AggregationMode,
    EntityType,
    GroupBy,
    ProviderId,
)
from ..registry import ProviderDefinition, ProviderDescriptor, TemplateKey

ATTRIBUTES = {
    CLUSTER_NAME: ("kafka.cluster_name", "resource.kafka.id"),
    TOPIC_NAME: ("topic",),
    ACCOUNT_ID: ("accountId",),
    BYTES_IN: (
        "confluent.kafka.server.received_bytes",
        "confluent.kafka.server.received_bytes.delta",
    ),
    BYTES_OUT: (
        "confluent.kafka.server.sent_bytes",
        "confluent.kafka.server.sent_bytes.delta",
    ),
    MESSAGES_IN: (
        "confluent.kafka.server.received_records",
        "confluent.kafka.server.received_records.delta",
    ),
    GroupBy.REGION.value: ("cloud.region",),
    GroupBy.ENVIRONMENT.value: ("confluent.environment.id",),
}

DESCRIPTOR = ProviderDescriptor(
    provider_id=ProviderId.CONFLUENT_CLOUD,
    display_name="Confluent Cloud",
    entity_type_names={
        EntityType.CLUSTER: "CONFLUENTCLOUDCLUSTER",
        EntityType.TOPIC: "CONFLUENTCLOUDKAFKATOPIC",
    },
    attribute_map=ATTRIBUTES,
)

_METRICS = "metricName LIKE 'confluent.kafka.server.%'"
_CLUSTER = ATTRIBUTES[CLUSTER_NAME]
_TOPIC = ATTRIBUTES[TOPIC_NAME]
_ACCOUNT = ATTRIBUTES[ACCOUNT_ID]
_REGION = ATTRIBUTES[GroupBy.REGION.value]
_ENVIRONMENT = ATTRIBUTES[GroupBy.ENVIRONMENT.value]
_TRAFFIC = ATTRIBUTES[BYTES_IN] + ATTRIBUTES[BYTES_OUT] + ATTRIBUTES[MESSAGES_IN]


def _cluster(function: str, *group: str, or_zero: bool = False) -> QuerySpec:
    return QuerySpec(
        select=columns(function, _TRAFFIC, or_zero=or_zero),
        source="Metric",
        where=(_METRICS,),
        facet_by=_CLUSTER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


def _topic(function: str, *group: str, or_zero: bool = False) -> QuerySpec:
    return QuerySpec(
        select=columns(function, _TRAFFIC, or_zero=or_zero),
        source="Metric",
        where=(_METRICS,),
        facet_by=_CLUSTER + _TOPIC + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


_HEALTH = AggregationMode.HEALTH
_THROUGHPUT = AggregationMode.THROUGHPUT

TEMPLATES = {
    TemplateKey(EntityType.CLUSTER, _HEALTH): _cluster("sum"),
    TemplateKey(EntityType.CLUSTER, _HEALTH, GroupBy.REGION): _cluster("sum", *_REGION),
    TemplateKey(EntityType.CLUSTER, _HEALTH, GroupBy.ENVIRONMENT): _cluster(
        "sum", *_ENVIRONMENT
    ),
    TemplateKey(EntityType.CLUSTER, _THROUGHPUT): _cluster("average", or_zero=True),
    TemplateKey(EntityType.CLUSTER, _THROUGHPUT, GroupBy.REGION): _cluster(
        "average", *_REGION, or_zero=True
    ),
    TemplateKey(EntityType.CLUSTER, _THROUGHPUT, GroupBy.ENVIRONMENT): _cluster(
        "average", *_ENVIRONMENT, or_zero=True
    ),
    TemplateKey(EntityType.TOPIC, _HEALTH): _topic("sum"),
    TemplateKey(EntityType.TOPIC, _HEALTH, GroupBy.REGION): _topic("sum", *_REGION),
    TemplateKey(EntityType.TOPIC, _THROUGHPUT): _topic("average", or_zero=True),
    TemplateKey(EntityType.TOPIC, _THROUGHPUT, GroupBy.REGION): _topic(
        "average", *_REGION, or_zero=True
    ),
}

DEFINITION = ProviderDefinition(
    descriptor=DESCRIPTOR,
    templates=TEMPLATES,
    health_rules={
        EntityType.CLUSTER: THROUGHPUT_ONLY_RULES,
        EntityType.TOPIC: TOPIC_RULES,
    },
)
