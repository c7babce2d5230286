"""Tests for the provider registry and its construction-time validation."""

from __future__ import annotations

import logging

import pytest

from kafkaview.domain.errors import UnknownProvider, UnsupportedAttribute
from kafkaview.domain.health import TOPIC_RULES
from kafkaview.domain.models import EntityType, ProviderId
from kafkaview.domain.providers import (
    aws_msk,
    build_registry,
    confluent_cloud,
    default_definitions,
    kafka_agent,
    metric_stream,
)
from kafkaview.domain.registry import ProviderDefinition, ProviderRegistry


def test_every_provider_registered_in_display_order(registry):
    assert registry.provider_ids() == (
        ProviderId.AWS_MSK,
        ProviderId.AWS_MSK_METRIC_STREAM,
        ProviderId.CONFLUENT_CLOUD,
        ProviderId.KAFKA_AGENT,
    )


def test_describe_unknown_provider_raises(registry):
    with pytest.raises(UnknownProvider):
        registry.describe("NOT_A_PROVIDER")


def test_describe_accepts_string_ids(registry):
    descriptor = registry.describe("KAFKA_AGENT")
    assert descriptor.provider_id is ProviderId.KAFKA_AGENT
    assert descriptor.entity_type_names[EntityType.CLUSTER] == "ONHOSTKAFKACLUSTER"


def test_resolve_attribute_keeps_fallback_order(registry):
    assert registry.resolve_attribute(ProviderId.KAFKA_AGENT, "clusterName") == (
        "kafka.cluster.name",
        "clusterName",
    )


def test_resolve_attribute_unsupported(registry):
    # Confluent Cloud exposes no broker identity.
    with pytest.raises(UnsupportedAttribute) as excinfo:
        registry.resolve_attribute(ProviderId.CONFLUENT_CLOUD, "brokerId")
    assert excinfo.value.logical_name == "brokerId"
    assert excinfo.value.error_type == "unsupported_attribute"


def test_metric_stream_provider_uses_shared_family(registry):
    assert registry.describe(ProviderId.AWS_MSK_METRIC_STREAM).uses_metric_stream
    assert registry.templates_for(ProviderId.AWS_MSK_METRIC_STREAM) == {}
    assert len(registry.metric_stream_templates()) == len(metric_stream.TEMPLATES)


def test_health_rules_missing_entity_type_is_none(registry):
    assert registry.health_rules(ProviderId.CONFLUENT_CLOUD, EntityType.BROKER) is None
    assert (
        registry.health_rules(ProviderId.CONFLUENT_CLOUD, EntityType.TOPIC)
        is TOPIC_RULES
    )


def test_templates_view_is_read_only(registry):
    templates = registry.templates_for(ProviderId.AWS_MSK)
    with pytest.raises(TypeError):
        templates["x"] = None  # type: ignore[index]


def test_build_registry_with_subset():
    subset = build_registry([ProviderId.CONFLUENT_CLOUD])
    assert subset.provider_ids() == (ProviderId.CONFLUENT_CLOUD,)
    with pytest.raises(UnknownProvider):
        subset.describe(ProviderId.AWS_MSK)


def test_duplicate_definition_rejected():
    with pytest.raises(ValueError, match="defined twice"):
        ProviderRegistry.from_definitions([aws_msk.DEFINITION, aws_msk.DEFINITION])


def test_dimensional_provider_without_templates_rejected():
    bare = ProviderDefinition(
        descriptor=confluent_cloud.DESCRIPTOR,
        health_rules=confluent_cloud.DEFINITION.health_rules,
    )
    with pytest.raises(ValueError, match="no query templates"):
        ProviderRegistry.from_definitions([bare])


def test_stream_provider_with_own_templates_rejected():
    wrong = ProviderDefinition(
        descriptor=metric_stream.DESCRIPTOR,
        health_rules=metric_stream.DEFINITION.health_rules,
        templates=metric_stream.TEMPLATES,
    )
    with pytest.raises(ValueError, match="shared"):
        ProviderRegistry.from_definitions([wrong], metric_stream.TEMPLATES)


def test_stream_provider_requires_stream_family():
    with pytest.raises(ValueError, match="metric-stream templates"):
        ProviderRegistry.from_definitions([metric_stream.DEFINITION])


def test_provider_without_health_rules_rejected():
    no_rules = ProviderDefinition(
        descriptor=kafka_agent.DESCRIPTOR,
        health_rules={},
        templates=kafka_agent.TEMPLATES,
    )
    with pytest.raises(ValueError, match="no health rules"):
        ProviderRegistry.from_definitions([no_rules])


def test_default_definitions_cover_every_provider_id():
    ids = {d.descriptor.provider_id for d in default_definitions()}
    assert ids == set(ProviderId)


def test_log_registry_status(caplog, registry):
    with caplog.at_level(logging.INFO):
        registry.log_registry_status()
    combined = " ".join(r.message for r in caplog.records)
    assert "'AWS_MSK_METRIC_STREAM' (metric stream)" in combined
    assert "'KAFKA_AGENT' (8 templates)" in combined


def test_log_registry_status_empty(caplog):
    empty = ProviderRegistry.from_definitions([])
    with caplog.at_level(logging.WARNING):
        empty.log_registry_status()
    assert any("No providers registered" in r.message for r in caplog.records)
