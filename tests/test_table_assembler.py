"""Tests for TableAssembler merging, de-duplication and ordering."""

from __future__ import annotations

import logging

from kafkaview.domain.errors import QueryExecutionFailure
from kafkaview.domain.models import (
    EntityType,
    HealthStatus,
    NormalizedEntity,
    ProviderId,
    TableRow,
)
from kafkaview.domain.table import (
    ProviderError,
    TableAssembler,
    account_sort_key,
)


def _entity(provider_id, account_id, name, status=HealthStatus.HEALTHY, **attrs):
    return NormalizedEntity(
        entity_type=EntityType.CLUSTER,
        provider_id=provider_id,
        account_id=account_id,
        name=name,
        metrics={"bytesIn": 1.0},
        attributes=attrs,
        health_status=status,
    )


def test_mixed_success_and_failure():
    results = {
        ProviderId.AWS_MSK: [
            _entity(ProviderId.AWS_MSK, "200", "msk-b"),
            _entity(ProviderId.AWS_MSK, "100", "msk-a"),
        ],
        ProviderId.CONFLUENT_CLOUD: [
            _entity(ProviderId.CONFLUENT_CLOUD, "150", "cc", HealthStatus.UNKNOWN)
        ],
        ProviderId.KAFKA_AGENT: QueryExecutionFailure(
            "backend unavailable", retryable=True, status_code=503
        ),
    }
    table = TableAssembler().assemble(results)

    assert [(r.account_id, r.name) for r in table.rows] == [
        ("100", "msk-a"),
        ("150", "cc"),
        ("200", "msk-b"),
    ]
    assert list(table.provider_errors) == [ProviderId.KAFKA_AGENT]
    error = table.provider_errors[ProviderId.KAFKA_AGENT]
    assert error.error_type == "server_error"
    assert error.retryable is True
    assert error.message == "backend unavailable"
    assert table.failed_providers == [ProviderId.KAFKA_AGENT]


def test_duplicate_identity_flagged_once(caplog):
    first = _entity(ProviderId.AWS_MSK, "1", "c", HealthStatus.HEALTHY)
    second = _entity(ProviderId.AWS_MSK, "1", "c", HealthStatus.UNHEALTHY)
    with caplog.at_level(logging.WARNING, logger="kafkaview.domain.table"):
        table = TableAssembler().assemble({ProviderId.AWS_MSK: [first, second]})
    assert len(table.rows) == 1
    assert table.rows[0].health_status is HealthStatus.HEALTHY
    assert table.duplicates == [("AWS_MSK", "Cluster", "1", "c")]
    warnings = [r for r in caplog.records if r.message == "table.duplicate_identity"]
    assert len(warnings) == 1


def test_same_name_different_provider_is_not_a_duplicate():
    table = TableAssembler().assemble(
        {
            ProviderId.AWS_MSK: [_entity(ProviderId.AWS_MSK, "1", "c")],
            ProviderId.AWS_MSK_METRIC_STREAM: [
                _entity(ProviderId.AWS_MSK_METRIC_STREAM, "1", "c")
            ],
        }
    )
    assert [r.provider_id for r in table.rows] == [
        ProviderId.AWS_MSK,
        ProviderId.AWS_MSK_METRIC_STREAM,
    ]
    assert table.duplicates == []


def test_assembly_is_idempotent():
    results = {
        ProviderId.AWS_MSK: [
            _entity(ProviderId.AWS_MSK, "2", "b"),
            _entity(ProviderId.AWS_MSK, "1", "a"),
        ]
    }
    assembler = TableAssembler()
    first = assembler.assemble(results)
    rows = {ProviderId.AWS_MSK: first.rows}
    second = assembler.assemble(rows)
    assert second.rows == first.rows


def test_ties_keep_arrival_order():
    table = TableAssembler().assemble(
        {
            ProviderId.KAFKA_AGENT: [_entity(ProviderId.KAFKA_AGENT, "1", "z")],
            ProviderId.AWS_MSK: [_entity(ProviderId.AWS_MSK, "1", "a")],
        }
    )
    assert [r.name for r in table.rows] == ["z", "a"]


def test_group_key_copied_into_rows():
    entity = _entity(ProviderId.AWS_MSK, "1", "c", region="eu-west-1")
    table = TableAssembler(group_key="region").assemble({ProviderId.AWS_MSK: [entity]})
    assert table.rows[0].group == "eu-west-1"
    assert isinstance(table.rows[0], TableRow)


def test_failures_for_providers_without_results():
    error = ProviderError(
        provider_id=ProviderId.CONFLUENT_CLOUD,
        error_type="unsupported_filter",
        message="brokerId",
    )
    table = TableAssembler().assemble(
        {ProviderId.CONFLUENT_CLOUD: error},
        failures={ProviderId.KAFKA_AGENT: TimeoutError("slow")},
    )
    assert table.rows == []
    assert table.provider_errors[ProviderId.CONFLUENT_CLOUD] is error
    assert table.provider_errors[ProviderId.KAFKA_AGENT].error_type == "timeout"


def test_empty_input():
    table = TableAssembler().assemble({})
    assert table.rows == []
    assert table.provider_errors == {}


def test_account_sort_key_orders_numerically():
    ids = ["10", "9", "abc", "100"]
    assert sorted(ids, key=account_sort_key) == ["9", "10", "100", "abc"]


def test_non_decimal_digit_account_ids_sort_as_text():
    table = TableAssembler().assemble(
        {
            ProviderId.AWS_MSK: [
                _entity(ProviderId.AWS_MSK, "²", "sup"),
                _entity(ProviderId.AWS_MSK, "7", "plain"),
            ]
        }
    )
    assert [r.account_id for r in table.rows] == ["7", "²"]
    assert account_sort_key("²") == (1, 0, "²")
