"""Tests for ResultNormalizer."""

from __future__ import annotations

import logging

import pytest

from kafkaview.domain.models import EntityType, GroupBy, HealthStatus, ProviderId
from kafkaview.domain.normalize import (
    ResultNormalizer,
    coerce_number,
    coerce_text,
)


@pytest.fixture
def normalizer(registry):
    return ResultNormalizer(registry)


def test_identity_from_fallback_attribute(normalizer):
    """Older agents report ``clusterName`` instead of ``kafka.cluster.name``."""
    rows = [
        {
            "clusterName": "legacy-cluster",
            "accountId": 42,
            "controller.activeControllerCount": 1,
            "replication.offlinePartitionsCount": 0,
            "replication.unreplicatedPartitions": 0,
        }
    ]
    [entity] = normalizer.normalize(ProviderId.KAFKA_AGENT, EntityType.CLUSTER, rows)
    assert entity.name == "legacy-cluster"
    assert entity.attributes["clusterName"] == "legacy-cluster"
    assert entity.account_id == "42"
    assert entity.metrics == {
        "activeControllers": 1.0,
        "offlinePartitions": 0.0,
        "underReplicatedPartitions": 0.0,
    }
    assert entity.health_status is HealthStatus.UNKNOWN


def test_primary_candidate_wins_over_fallback(normalizer):
    rows = [
        {
            "kafka.cluster.name": "primary",
            "clusterName": "secondary",
            "accountId": "1",
        }
    ]
    [entity] = normalizer.normalize(ProviderId.KAFKA_AGENT, EntityType.CLUSTER, rows)
    assert entity.name == "primary"


def test_null_primary_falls_through_to_next_numeric_candidate(normalizer):
    rows = [
        {
            "provider.clusterName": "c1",
            "accountId": "1",
            "provider.underReplicatedPartitions.Sum": None,
            "provider.underReplicatedPartitions.Maximum": 3,
        }
    ]
    [entity] = normalizer.normalize(ProviderId.AWS_MSK, EntityType.CLUSTER, rows)
    assert entity.metric("underReplicatedPartitions") == 3.0


def test_absent_and_sentinel_values_stay_absent(normalizer):
    rows = [
        {
            "provider.clusterName": "c1",
            "accountId": "1",
            "provider.activeControllerCount.Sum": "NaN",
            "provider.offlinePartitionsCount.Sum": True,
            "provider.bytesInPerSec.Average": "12.5",
        }
    ]
    [entity] = normalizer.normalize(ProviderId.AWS_MSK, EntityType.CLUSTER, rows)
    assert entity.metric("activeControllers") is None
    assert entity.metric("offlinePartitions") is None
    assert entity.metric("underReplicatedPartitions") is None
    assert entity.metric("bytesIn") == 12.5


def test_rows_without_identity_are_dropped(normalizer, caplog):
    rows = [
        {"accountId": "1", "provider.bytesInPerSec.Average": 3},
        {"provider.clusterName": "", "accountId": "1"},
        {"provider.clusterName": "c1", "accountId": "1"},
    ]
    with caplog.at_level(logging.DEBUG, logger="kafkaview.domain.normalize"):
        entities = normalizer.normalize(ProviderId.AWS_MSK, EntityType.CLUSTER, rows)
    assert [e.name for e in entities] == ["c1"]
    assert any(r.message == "normalize.rows_dropped" for r in caplog.records)


def test_missing_account_uses_single_scope_account(normalizer):
    rows = [{"provider.clusterName": "c1"}]
    single = normalizer.normalize(
        ProviderId.AWS_MSK, EntityType.CLUSTER, rows, account_scope=["77"]
    )
    assert single[0].account_id == "77"
    several = normalizer.normalize(
        ProviderId.AWS_MSK, EntityType.CLUSTER, rows, account_scope=["1", "2"]
    )
    assert several == []


def test_topic_names_are_cluster_qualified(normalizer):
    rows = [
        {"kafka.cluster_name": "east", "topic": "orders", "accountId": "1"},
        {"kafka.cluster_name": "west", "topic": "orders", "accountId": "1"},
        {"topic": "orphan", "accountId": "1"},
    ]
    entities = normalizer.normalize(ProviderId.CONFLUENT_CLOUD, EntityType.TOPIC, rows)
    assert [e.name for e in entities] == ["east/orders", "west/orders", "orphan"]
    assert entities[0].attributes == {"clusterName": "east", "topicName": "orders"}


def test_group_value_recorded(normalizer):
    rows = [{"provider.clusterName": "c1", "accountId": "1", "awsRegion": "us-east-1"}]
    [entity] = normalizer.normalize(
        ProviderId.AWS_MSK, EntityType.CLUSTER, rows, group_by=GroupBy.REGION
    )
    assert entity.attributes["region"] == "us-east-1"


def test_entity_type_without_identity_mapping(normalizer):
    rows = [{"kafka.cluster_name": "c1", "accountId": "1"}]
    assert normalizer.normalize(ProviderId.CONFLUENT_CLOUD, EntityType.BROKER, rows) == []


def test_row_order_preserved(normalizer):
    rows = [
        {"broker.id": 3, "kafka.cluster.name": "c", "accountId": "1"},
        {"broker.id": 1.0, "kafka.cluster.name": "c", "accountId": "1"},
    ]
    entities = normalizer.normalize(ProviderId.KAFKA_AGENT, EntityType.BROKER, rows)
    assert [e.name for e in entities] == ["c/3", "c/1"]


@pytest.mark.parametrize(
    "value,expected",
    [(1, 1.0), ("2.5", 2.5), (" 3 ", 3.0), (None, None), ("n/a", None),
     (float("inf"), None), (False, None), ([1], None), (10**400, None),
     ("1e400", None)],
)
def test_coerce_number(value, expected):
    assert coerce_number(value) == expected


def test_coerce_text():
    assert coerce_text(7.0) == "7"
    assert coerce_text("  ") is None
    assert coerce_text(None) is None


def test_oversized_metric_is_absent_not_fatal(normalizer):
    rows = [
        {
            "provider.clusterName": "c1",
            "accountId": "1",
            "provider.activeControllerCount.Sum": 10**400,
            "provider.offlinePartitionsCount.Sum": 0,
        }
    ]
    [entity] = normalizer.normalize(ProviderId.AWS_MSK, EntityType.CLUSTER, rows)
    assert entity.metric("activeControllers") is None
    assert entity.metric("offlinePartitions") == 0.0
