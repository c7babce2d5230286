"""Config models and loader.

This module defines Pydantic models for file- and environment-based
configuration. JSON parsing prefers `orjson` when available and falls back to
the standard library's `json` module otherwise.

Example config file::

    {
      "executor": {"endpoint": "https://api.newrelic.com/graphql",
                   "api_key": "NRAK-...", "timeout_seconds": 30},
      "providers": {
        "AWS_MSK": {"account_ids": ["1234567"]},
        "KAFKA_AGENT": {"enabled": true},
        "CONFLUENT_CLOUD": {"enabled": false}
      }
    }
"""

from __future__ import annotations

import json as _json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

try:
    import orjson as _orjson_mod  # type: ignore[assignment]
except ImportError:  # pragma: no cover - optional dependency
    _orjson_mod = None  # type: ignore[assignment]
    _loads_orjson: Optional[Callable[[bytes], Any]] = None
else:

    def _loads_orjson(buf: bytes) -> Any:
        loader = getattr(_orjson_mod, "loads")  # type: ignore[assignment]
        return loader(buf)


from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.models import ProviderId


class ProviderConfig(BaseModel):
    """Per-provider settings.

    Attributes
    ----------
    enabled: bool
        Whether the provider takes part in overview requests.
    account_ids: List[str]
        Default account scope. Empty means accounts are discovered through
        entity search at request time.
    """

    enabled: bool = True
    account_ids: List[str] = Field(default_factory=list)

    @field_validator("account_ids", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        # Account ids are numeric in most backends; keep them as text.
        if isinstance(value, list):
            return [str(v) for v in value]
        return value


class ExecutorConfig(BaseModel):
    """Connection settings for the GraphQL query executor.

    Attributes
    ----------
    endpoint: str
        GraphQL endpoint URL.
    api_key: Optional[str]
        User API key sent in the ``API-Key`` header.
    timeout_seconds: int
        HTTP request timeout in seconds.
    query_timeout_seconds: int
        Server-side timeout requested for each query.
    """

    endpoint: str = Field(
        "https://api.newrelic.com/graphql", description="GraphQL endpoint URL"
    )
    api_key: Optional[str] = Field(None, description="User API key")
    timeout_seconds: int = Field(30, ge=1)
    query_timeout_seconds: int = Field(
        60, ge=1, description="Server-side query timeout"
    )
    max_retries: int = Field(2, ge=0, description="Number of retry attempts")
    backoff_initial_ms: int = Field(
        200, ge=0, description="Initial backoff in milliseconds"
    )
    backoff_multiplier: float = Field(
        2.0, ge=1.0, description="Backoff multiplier per attempt"
    )
    entity_cache_size: int = Field(
        256, ge=1, description="Entity search results kept in the LRU cache"
    )
    entity_cache_ttl_seconds: float = Field(
        300.0, ge=0.0, description="Entity search cache lifetime; 0 disables expiry"
    )


class AppConfig(BaseModel):
    """Top-level application configuration.

    Attributes
    ----------
    executor: Optional[ExecutorConfig]
        Query executor connection; ``None`` leaves the service without an
        executor (plans can still be built).
    providers: Dict[ProviderId, ProviderConfig]
        Provider settings. Providers absent from the mapping are enabled
        with no default account scope; an empty mapping enables every
        provider.
    max_sessions: int
        Overview sessions kept at once; the least recently used is dropped.
    session_ttl_seconds: float
        Idle session lifetime; 0 keeps sessions until they are evicted.
    """

    executor: Optional[ExecutorConfig] = None
    providers: Dict[ProviderId, ProviderConfig] = Field(default_factory=dict)
    max_sessions: int = Field(128, ge=1, description="Overview sessions retained")
    session_ttl_seconds: float = Field(
        3600.0, ge=0.0, description="Idle session lifetime; 0 disables expiry"
    )

    def enabled_providers(self, available: List[ProviderId]) -> List[ProviderId]:
        """Filter ``available`` down to enabled providers, keeping its order."""
        return [
            pid
            for pid in available
            if self.providers.get(pid, ProviderConfig()).enabled
        ]

    def account_ids_for(self, provider_id: ProviderId) -> List[str]:
        """Configured default account scope of one provider."""
        return list(self.providers.get(provider_id, ProviderConfig()).account_ids)

    @staticmethod
    def load(path: Path) -> "AppConfig":
        """Load application config from a JSON file."""
        raw = path.read_bytes()
        if _loads_orjson is not None:
            data = _loads_orjson(raw)
        else:
            data = _json.loads(raw.decode("utf-8"))
        return AppConfig.model_validate(data)


class EnvSettings(BaseSettings):
    """Environment-driven settings and .env support.

    Attributes
    ----------
    log_level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "INFO".
    config: Optional[str]
        Path to the JSON app config (``KAFKAVIEW_CONFIG``).
    api_key: Optional[str]
        Overrides ``executor.api_key`` from the config file.
    http_token: Optional[str]
        Bearer token required by the HTTP API. Unset disables auth.
    cors_origins: str
        Comma-separated list of allowed CORS origins.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="KAFKAVIEW_", extra="ignore"
    )

    log_level: str = Field("INFO")
    config: Optional[str] = Field(None, description="Path to JSON app config")
    api_key: Optional[str] = Field(None, description="Executor API key override")
    http_token: Optional[str] = Field(None, description="HTTP bearer token")
    cors_origins: str = Field("", description="Comma-separated CORS origins")

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def resolve_executor(self, cfg: AppConfig) -> Optional[ExecutorConfig]:
        """Executor config with the environment API key applied."""
        if cfg.executor is None:
            if not self.api_key:
                return None
            return ExecutorConfig(api_key=self.api_key)
        if self.api_key:
            return cfg.executor.model_copy(update={"api_key": self.api_key})
        return cfg.executor
