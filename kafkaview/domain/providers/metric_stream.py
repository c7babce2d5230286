"""Amazon MSK through CloudWatch metric streams.

Metric streams land as dimensional ``Metric`` events named
``aws.kafka.<MetricName>[.<dimension set>]``. Depending on the stream
configuration the dimensions arrive either as ``aws.kafka.*`` or as
``aws.msk.*`` attributes, so every identity has two candidates.

The templates here form the metric-stream family: they are selected for any
provider whose descriptor sets ``uses_metric_stream``.
"""

from __future__ import annotations

from ...query.spec import MAX_LIMIT, QuerySpec
from ...query.templates import columns
from ..health import BROKER_RULES, CLUSTER_RULES, TOPIC_RULES
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
    CLUSTER_NAME: ("aws.kafka.ClusterName", "aws.msk.clusterName"),
    BROKER_ID: ("aws.kafka.BrokerID", "aws.msk.brokerId"),
    TOPIC_NAME: ("aws.kafka.Topic", "aws.msk.topic"),
    ACCOUNT_ID: ("accountId",),
    BYTES_IN: ("aws.kafka.BytesInPerSec.byBroker", "aws.kafka.BytesInPerSec.byTopic"),
    BYTES_OUT: (
        "aws.kafka.BytesOutPerSec.byBroker",
        "aws.kafka.BytesOutPerSec.byTopic",
    ),
    MESSAGES_IN: (
        "aws.kafka.MessagesInPerSec.byBroker",
        "aws.kafka.MessagesInPerSec.byTopic",
    ),
    ACTIVE_CONTROLLERS: ("aws.kafka.ActiveControllerCount",),
    OFFLINE_PARTITIONS: ("aws.kafka.OfflinePartitionsCount",),
    UNDER_REPLICATED_PARTITIONS: ("aws.kafka.UnderReplicatedPartitions",),
    GroupBy.REGION.value: ("aws.region",),
}

DESCRIPTOR = ProviderDescriptor(
    provider_id=ProviderId.AWS_MSK_METRIC_STREAM,
    display_name="Amazon MSK (metric streams)",
    entity_type_names={
        EntityType.CLUSTER: "AWSMSKCLUSTER",
        EntityType.BROKER: "AWSMSKBROKER",
        EntityType.TOPIC: "AWSMSKTOPIC",
    },
    attribute_map=ATTRIBUTES,
    uses_metric_stream=True,
)

_NAMESPACE = "aws.Namespace = 'AWS/Kafka'"
_CLUSTER = ATTRIBUTES[CLUSTER_NAME]
_BROKER = ATTRIBUTES[BROKER_ID]
_TOPIC = ATTRIBUTES[TOPIC_NAME]
_ACCOUNT = ATTRIBUTES[ACCOUNT_ID]
_REGION = ATTRIBUTES[GroupBy.REGION.value]
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


def _cluster_health(*group: str) -> QuerySpec:
    inner = QuerySpec(
        select=columns(
            "max",
            ATTRIBUTES[ACTIVE_CONTROLLERS]
            + ATTRIBUTES[OFFLINE_PARTITIONS]
            + ATTRIBUTES[UNDER_REPLICATED_PARTITIONS],
        ),
        source="Metric",
        where=(_NAMESPACE,),
        facet_by=_CLUSTER + _BROKER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )
    return QuerySpec(
        select=columns("max", ATTRIBUTES[ACTIVE_CONTROLLERS])
        + columns("max", ATTRIBUTES[OFFLINE_PARTITIONS])
        + columns("sum", ATTRIBUTES[UNDER_REPLICATED_PARTITIONS]),
        source=inner,
        facet_by=_CLUSTER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


def _cluster_throughput(*group: str) -> QuerySpec:
    inner = QuerySpec(
        select=columns("average", _BROKER_TRAFFIC),
        source="Metric",
        where=(_NAMESPACE,),
        facet_by=_CLUSTER + _BROKER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )
    return QuerySpec(
        select=columns("sum", _BROKER_TRAFFIC, or_zero=True),
        source=inner,
        facet_by=_CLUSTER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


def _broker(
    function: str, extra: tuple, *group: str, or_zero: bool = False
) -> QuerySpec:
    return QuerySpec(
        select=columns(function, extra + _BROKER_TRAFFIC, or_zero=or_zero),
        source="Metric",
        where=(_NAMESPACE,),
        facet_by=_CLUSTER + _BROKER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


def _topic(function: str, *group: str, or_zero: bool = False) -> QuerySpec:
    return QuerySpec(
        select=columns(function, _TOPIC_TRAFFIC, or_zero=or_zero),
        source="Metric",
        where=(_NAMESPACE,),
        facet_by=_CLUSTER + _TOPIC + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


_HEALTH = AggregationMode.HEALTH
_THROUGHPUT = AggregationMode.THROUGHPUT
_UNDER_REPLICATED = ATTRIBUTES[UNDER_REPLICATED_PARTITIONS]

TEMPLATES = {
    TemplateKey(EntityType.CLUSTER, _HEALTH): _cluster_health(),
    TemplateKey(EntityType.CLUSTER, _HEALTH, GroupBy.REGION): _cluster_health(*_REGION),
    TemplateKey(EntityType.CLUSTER, _THROUGHPUT): _cluster_throughput(),
    TemplateKey(EntityType.CLUSTER, _THROUGHPUT, GroupBy.REGION): _cluster_throughput(
        *_REGION
    ),
    TemplateKey(EntityType.BROKER, _HEALTH): _broker("max", _UNDER_REPLICATED),
    TemplateKey(EntityType.BROKER, _HEALTH, GroupBy.REGION): _broker(
        "max", _UNDER_REPLICATED, *_REGION
    ),
    TemplateKey(EntityType.BROKER, _THROUGHPUT): _broker("average", (), or_zero=True),
    TemplateKey(EntityType.BROKER, _THROUGHPUT, GroupBy.REGION): _broker(
        "average", (), *_REGION, or_zero=True
    ),
    TemplateKey(EntityType.TOPIC, _HEALTH): _topic("latest"),
    TemplateKey(EntityType.TOPIC, _HEALTH, GroupBy.REGION): _topic("latest", *_REGION),
    TemplateKey(EntityType.TOPIC, _THROUGHPUT): _topic("average", or_zero=True),
    TemplateKey(EntityType.TOPIC, _THROUGHPUT, GroupBy.REGION): _topic(
        "average", *_REGION, or_zero=True
    ),
}

DEFINITION = ProviderDefinition(
    descriptor=DESCRIPTOR,
    health_rules={
        EntityType.CLUSTER: CLUSTER_RULES,
        EntityType.BROKER: BROKER_RULES,
        EntityType.TOPIC: TOPIC_RULES,
    },
)
