"""Amazon MSK through the polling cloud integration.

Polling produces one sample event type per entity kind
(``AwsMskClusterSample``, ``AwsMskBrokerSample``, ``AwsMskTopicSample``) with
CloudWatch statistics flattened into ``provider.<metric>.<statistic>``
attributes. Under-replicated partitions and throughput are broker-level, so
cluster rows are two-level aggregations over per-broker samples.
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
    CLUSTER_NAME: ("provider.clusterName",),
    BROKER_ID: ("provider.brokerId",),
    TOPIC_NAME: ("provider.topic",),
    ACCOUNT_ID: ("accountId",),
    BYTES_IN: ("provider.bytesInPerSec.Average",),
    BYTES_OUT: ("provider.bytesOutPerSec.Average",),
    MESSAGES_IN: ("provider.messagesInPerSec.Average",),
    ACTIVE_CONTROLLERS: ("provider.activeControllerCount.Sum",),
    OFFLINE_PARTITIONS: ("provider.offlinePartitionsCount.Sum",),
    UNDER_REPLICATED_PARTITIONS: (
        "provider.underReplicatedPartitions.Sum",
        "provider.underReplicatedPartitions.Maximum",
    ),
    GroupBy.REGION.value: ("awsRegion",),
    GroupBy.ENVIRONMENT.value: ("tags.Environment",),
}

DESCRIPTOR = ProviderDescriptor(
    provider_id=ProviderId.AWS_MSK,
    display_name="Amazon MSK",
    entity_type_names={
        EntityType.CLUSTER: "AWSMSKCLUSTER",
        EntityType.BROKER: "AWSMSKBROKER",
        EntityType.TOPIC: "AWSMSKTOPIC",
    },
    attribute_map=ATTRIBUTES,
)

_CLUSTER = ATTRIBUTES[CLUSTER_NAME]
_BROKER = ATTRIBUTES[BROKER_ID]
_TOPIC = ATTRIBUTES[TOPIC_NAME]
_ACCOUNT = ATTRIBUTES[ACCOUNT_ID]
_REGION = ATTRIBUTES[GroupBy.REGION.value]
_ENVIRONMENT = ATTRIBUTES[GroupBy.ENVIRONMENT.value]
_TRAFFIC = ATTRIBUTES[BYTES_IN] + ATTRIBUTES[BYTES_OUT] + ATTRIBUTES[MESSAGES_IN]


def _cluster_health(*group: str) -> QuerySpec:
    inner = QuerySpec(
        select=columns(
            "latest",
            ATTRIBUTES[ACTIVE_CONTROLLERS]
            + ATTRIBUTES[OFFLINE_PARTITIONS]
            + ATTRIBUTES[UNDER_REPLICATED_PARTITIONS],
        ),
        source="AwsMskClusterSample, AwsMskBrokerSample",
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
        select=columns("average", _TRAFFIC),
        source="AwsMskBrokerSample",
        facet_by=_CLUSTER + _BROKER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )
    return QuerySpec(
        select=columns("sum", _TRAFFIC, or_zero=True),
        source=inner,
        facet_by=_CLUSTER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


def _broker_health(*group: str) -> QuerySpec:
    return QuerySpec(
        select=columns("latest", ATTRIBUTES[UNDER_REPLICATED_PARTITIONS] + _TRAFFIC),
        source="AwsMskBrokerSample",
        facet_by=_CLUSTER + _BROKER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


def _broker_throughput(*group: str) -> QuerySpec:
    return QuerySpec(
        select=columns("average", _TRAFFIC, or_zero=True),
        source="AwsMskBrokerSample",
        facet_by=_CLUSTER + _BROKER + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


def _topic(function: str, *group: str, or_zero: bool = False) -> QuerySpec:
    return QuerySpec(
        select=columns(function, _TRAFFIC, or_zero=or_zero),
        source="AwsMskTopicSample",
        facet_by=_CLUSTER + _TOPIC + _ACCOUNT + group,
        limit=MAX_LIMIT,
    )


_HEALTH = AggregationMode.HEALTH
_THROUGHPUT = AggregationMode.THROUGHPUT

TEMPLATES = {
    TemplateKey(EntityType.CLUSTER, _HEALTH): _cluster_health(),
    TemplateKey(EntityType.CLUSTER, _HEALTH, GroupBy.REGION): _cluster_health(*_REGION),
    TemplateKey(EntityType.CLUSTER, _HEALTH, GroupBy.ENVIRONMENT): _cluster_health(
        *_ENVIRONMENT
    ),
    TemplateKey(EntityType.CLUSTER, _THROUGHPUT): _cluster_throughput(),
    TemplateKey(EntityType.CLUSTER, _THROUGHPUT, GroupBy.REGION): _cluster_throughput(
        *_REGION
    ),
    TemplateKey(
        EntityType.CLUSTER, _THROUGHPUT, GroupBy.ENVIRONMENT
    ): _cluster_throughput(*_ENVIRONMENT),
    TemplateKey(EntityType.BROKER, _HEALTH): _broker_health(),
    TemplateKey(EntityType.BROKER, _HEALTH, GroupBy.REGION): _broker_health(*_REGION),
    TemplateKey(EntityType.BROKER, _THROUGHPUT): _broker_throughput(),
    TemplateKey(EntityType.BROKER, _THROUGHPUT, GroupBy.REGION): _broker_throughput(
        *_REGION
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
    templates=TEMPLATES,
    health_rules={
        EntityType.CLUSTER: CLUSTER_RULES,
        EntityType.BROKER: BROKER_RULES,
        EntityType.TOPIC: TOPIC_RULES,
    },
)
