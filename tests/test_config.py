"""Tests for file and environment configuration."""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from kafkaview.config.models import AppConfig, EnvSettings, ExecutorConfig
from kafkaview.domain.models import ProviderId


def _write(tmp_path, payload):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(payload))
    return path


def test_load_config_file(tmp_path):
    path = _write(
        tmp_path,
        {
            "executor": {"api_key": "NRAK-test", "timeout_seconds": 10},
            "providers": {
                "AWS_MSK": {"account_ids": [1234567, "7654321"]},
                "CONFLUENT_CLOUD": {"enabled": False},
            },
        },
    )
    cfg = AppConfig.load(path)

    assert cfg.executor is not None
    assert cfg.executor.api_key == "NRAK-test"
    assert cfg.executor.timeout_seconds == 10
    assert cfg.executor.endpoint == "https://api.newrelic.com/graphql"
    assert cfg.account_ids_for(ProviderId.AWS_MSK) == ["1234567", "7654321"]
    assert cfg.account_ids_for(ProviderId.KAFKA_AGENT) == []


def test_enabled_providers_keeps_registry_order():
    cfg = AppConfig.model_validate(
        {"providers": {"CONFLUENT_CLOUD": {"enabled": False}}}
    )
    available = list(ProviderId)
    assert cfg.enabled_providers(available) == [
        ProviderId.AWS_MSK,
        ProviderId.AWS_MSK_METRIC_STREAM,
        ProviderId.KAFKA_AGENT,
    ]
    assert AppConfig().enabled_providers(available) == available


def test_unknown_provider_in_config_rejected(tmp_path):
    path = _write(tmp_path, {"providers": {"KINESIS": {}}})
    with pytest.raises(ValidationError):
        AppConfig.load(path)


def test_executor_limits_validated():
    with pytest.raises(ValidationError):
        ExecutorConfig(timeout_seconds=0)
    with pytest.raises(ValidationError):
        ExecutorConfig(backoff_multiplier=0.5)


def test_env_settings():
    env = {
        "KAFKAVIEW_LOG_LEVEL": "DEBUG",
        "KAFKAVIEW_CONFIG": "/etc/kafkaview.json",
        "KAFKAVIEW_HTTP_TOKEN": "secret",
        "KAFKAVIEW_CORS_ORIGINS": "https://a.example, https://b.example,",
    }
    with patch.dict(os.environ, env, clear=True):
        settings = EnvSettings(_env_file=None)
    assert settings.log_level == "DEBUG"
    assert settings.config == "/etc/kafkaview.json"
    assert settings.http_token == "secret"
    assert settings.cors_origin_list == ["https://a.example", "https://b.example"]


def test_resolve_executor_applies_env_api_key():
    with patch.dict(os.environ, {"KAFKAVIEW_API_KEY": "from-env"}, clear=True):
        settings = EnvSettings(_env_file=None)

    from_file = AppConfig(executor=ExecutorConfig(api_key="from-file", timeout_seconds=5))
    resolved = settings.resolve_executor(from_file)
    assert resolved.api_key == "from-env"
    assert resolved.timeout_seconds == 5
    assert from_file.executor.api_key == "from-file"

    assert settings.resolve_executor(AppConfig()).api_key == "from-env"


def test_resolve_executor_without_key_or_section():
    with patch.dict(os.environ, {}, clear=True):
        settings = EnvSettings(_env_file=None)
    assert settings.resolve_executor(AppConfig()) is None
    executor = ExecutorConfig(api_key="k")
    assert settings.resolve_executor(AppConfig(executor=executor)) is executor
