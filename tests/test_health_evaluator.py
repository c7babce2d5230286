"""Tests for HealthEvaluator and the shared rule sets."""

from __future__ import annotations

import pytest

from kafkaview.domain.health import HealthEvaluator
from kafkaview.domain.models import (
    EntityType,
    HealthStatus,
    NormalizedEntity,
    ProviderId,
)


def _entity(provider_id, entity_type, **metrics):
    return NormalizedEntity(
        entity_type=entity_type,
        provider_id=provider_id,
        account_id="1",
        name="e",
        metrics=metrics,
    )


@pytest.fixture
def evaluator(registry):
    return HealthEvaluator(registry)


@pytest.mark.parametrize(
    "provider_id",
    [ProviderId.AWS_MSK, ProviderId.AWS_MSK_METRIC_STREAM, ProviderId.KAFKA_AGENT],
)
def test_healthy_cluster(evaluator, provider_id):
    entity = _entity(
        provider_id,
        EntityType.CLUSTER,
        activeControllers=1,
        offlinePartitions=0,
        underReplicatedPartitions=0,
    )
    assert evaluator.evaluate(entity) is HealthStatus.HEALTHY


@pytest.mark.parametrize(
    "metrics",
    [
        {"activeControllers": 0, "offlinePartitions": 0, "underReplicatedPartitions": 0},
        {"activeControllers": 2},
        {"activeControllers": 1, "offlinePartitions": 4},
        {"underReplicatedPartitions": 1},
    ],
)
def test_any_triggered_check_is_unhealthy(evaluator, metrics):
    entity = _entity(ProviderId.KAFKA_AGENT, EntityType.CLUSTER, **metrics)
    assert evaluator.evaluate(entity) is HealthStatus.UNHEALTHY


def test_topic_without_inbound_bytes_is_unhealthy(evaluator):
    entity = _entity(ProviderId.AWS_MSK, EntityType.TOPIC, bytesIn=0, bytesOut=5)
    assert evaluator.evaluate(entity) is HealthStatus.UNHEALTHY
    assert evaluator.reasons(entity) == ["no bytes in"]


def test_absence_is_unknown_not_healthy(evaluator):
    entity = _entity(ProviderId.AWS_MSK, EntityType.CLUSTER)
    assert evaluator.evaluate(entity) is HealthStatus.UNKNOWN
    partial = _entity(ProviderId.AWS_MSK, EntityType.TOPIC, bytesOut=10)
    assert evaluator.evaluate(partial) is HealthStatus.HEALTHY


def test_throughput_only_provider_never_unhealthy_on_cluster(evaluator):
    entity = _entity(ProviderId.CONFLUENT_CLOUD, EntityType.CLUSTER, bytesIn=0)
    assert evaluator.evaluate(entity) is HealthStatus.HEALTHY
    empty = _entity(ProviderId.CONFLUENT_CLOUD, EntityType.CLUSTER)
    assert evaluator.evaluate(empty) is HealthStatus.UNKNOWN


def test_no_registered_rules_is_unknown(evaluator):
    entity = _entity(
        ProviderId.CONFLUENT_CLOUD, EntityType.BROKER, underReplicatedPartitions=9
    )
    assert evaluator.evaluate(entity) is HealthStatus.UNKNOWN
    assert evaluator.reasons(entity) == []


def test_broker_offline_partitions_not_checked_for_msk(evaluator):
    entity = _entity(
        ProviderId.AWS_MSK,
        EntityType.BROKER,
        underReplicatedPartitions=0,
        offlinePartitions=3,
    )
    assert evaluator.evaluate(entity) is HealthStatus.HEALTHY


def test_classify_returns_copies(evaluator):
    entities = [
        _entity(ProviderId.KAFKA_AGENT, EntityType.TOPIC, bytesIn=1, bytesOut=1),
        _entity(ProviderId.KAFKA_AGENT, EntityType.TOPIC, bytesIn=1, bytesOut=0),
    ]
    classified = evaluator.classify(entities)
    assert [e.health_status for e in classified] == [
        HealthStatus.HEALTHY,
        HealthStatus.UNHEALTHY,
    ]
    assert all(e.health_status is HealthStatus.UNKNOWN for e in entities)
    assert classified[0] is not entities[0]
