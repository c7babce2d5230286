"""HTTP server exposing the overview service via FastAPI.

Endpoints are a thin transport over :class:`OverviewService`. Authentication
(optional bearer token) and CORS are configured through ``KAFKAVIEW_*``
environment variables.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .. import __version__
from ..adapters import get_executor, log_executor_status, register_executor
from ..adapters.nerdgraph import NerdGraphAdapter
from ..config.models import AppConfig, EnvSettings
from ..domain.errors import ExecutorNotConfigured, UnknownProvider
from ..domain.models import EntityType, ProviderId
from ..observability import setup_logging
from ..utils.correlation import get_request_id, set_request_id
from .app import OverviewService
from .models import (
    AccountsResponse,
    CapabilitiesResponse,
    ErrorResponse,
    HealthResponse,
    OverviewHTTPRequest,
    OverviewResponse,
    PlanResponse,
    ProviderCapability,
)

logger = logging.getLogger(__name__)


class CorrelationIdMiddleware(
    BaseHTTPMiddleware
):  # pylint: disable=too-few-public-methods
    """Attach a correlation id to every request and log its timing."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        req_id = request.headers.get("x-correlation-id") or uuid.uuid4().hex[:12]
        set_request_id(req_id)
        response = await call_next(request)
        response.headers["x-correlation-id"] = req_id
        logger.debug(
            "http.request",
            extra={
                "req_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round((time.time() - start_time) * 1000, 1),
            },
        )
        return response


def _error(status_code: int, detail: str, error_type: str, **kwargs: Any):
    err = ErrorResponse(detail=detail, error_type=error_type, **kwargs)
    return JSONResponse(status_code=status_code, content={"detail": err.model_dump()})


def _make_auth_dependency(expected: Optional[str]):
    """Return a dependency function that enforces optional bearer token."""

    def _auth_dependency(authorization: str | None = Header(default=None)) -> None:
        if expected is None:
            return
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        token = authorization.split(" ", 1)[1]
        if token != expected:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)

    return _auth_dependency


def _log_startup_memory() -> None:
    process = psutil.Process()
    mem_info = process.memory_info()
    logger.info(
        "http.startup.memory",
        extra={
            "rss_mb": round(mem_info.rss / 1024 / 1024, 1),
            "vms_mb": round(mem_info.vms / 1024 / 1024, 1),
        },
    )


def _load_config(settings: EnvSettings) -> tuple[AppConfig, Optional[str]]:
    """Load the app config named by ``KAFKAVIEW_CONFIG``, if any."""
    if not settings.config:
        return AppConfig(), None
    path = Path(settings.config)
    if not path.exists():
        return AppConfig(), f"config file not found: {path}"
    try:
        return AppConfig.load(path), None
    except (OSError, ValueError, ValidationError) as exc:
        return AppConfig(), str(exc)


def build_service(settings: EnvSettings) -> OverviewService:
    """Build the overview service and its executor from settings and config."""
    cfg, config_error = _load_config(settings)
    if get_executor() is None:
        executor_cfg = settings.resolve_executor(cfg)
        if executor_cfg is not None:
            register_executor(
                NerdGraphAdapter(
                    executor_cfg.endpoint,
                    executor_cfg.api_key,
                    executor_cfg.timeout_seconds,
                    query_timeout=executor_cfg.query_timeout_seconds,
                    max_retries=executor_cfg.max_retries,
                    backoff_initial_ms=executor_cfg.backoff_initial_ms,
                    backoff_multiplier=executor_cfg.backoff_multiplier,
                    cache_size=executor_cfg.entity_cache_size,
                    cache_ttl_seconds=executor_cfg.entity_cache_ttl_seconds,
                )
            )
    log_executor_status()
    logger.info(
        "http.startup.settings",
        extra={
            "log_level": settings.log_level,
            "cors_origins": settings.cors_origins,
            "http_auth": "enabled" if settings.http_token else "disabled",
            "config_path": settings.config,
            "config_error": config_error,
        },
    )
    return OverviewService(executor=get_executor(), config=cfg)


def _capabilities(service: OverviewService) -> List[ProviderCapability]:
    enabled = set(service.enabled_providers())
    registry = service.registry
    providers = []
    for provider_id in registry.provider_ids():
        descriptor = registry.describe(provider_id)
        family = (
            registry.metric_stream_templates()
            if descriptor.uses_metric_stream
            else registry.templates_for(provider_id)
        )
        entity_types = []
        modes = []
        groups = []
        for key in family:
            if key.entity_type in descriptor.entity_type_names:
                if key.entity_type not in entity_types:
                    entity_types.append(key.entity_type)
            if key.aggregation_mode not in modes:
                modes.append(key.aggregation_mode)
            if key.group_by is not None and key.group_by not in groups:
                groups.append(key.group_by)
        providers.append(
            ProviderCapability(
                provider_id=provider_id,
                display_name=descriptor.display_name,
                enabled=provider_id in enabled,
                uses_metric_stream=descriptor.uses_metric_stream,
                entity_types=entity_types,
                aggregation_modes=modes,
                group_by=groups,
            )
        )
    return providers


def _register_health(app: FastAPI) -> None:
    """Register health and readiness endpoints."""

    @app.get("/health", response_model=HealthResponse, summary="Liveness probe")
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/ready", response_model=HealthResponse, summary="Readiness probe")
    async def ready() -> HealthResponse:
        return HealthResponse(status="ready")


def _register_capabilities(
    app: FastAPI, service: OverviewService, settings: EnvSettings
) -> None:
    @app.get(
        "/capabilities",
        response_model=CapabilitiesResponse,
        summary="Server capabilities summary",
    )
    async def capabilities() -> CapabilitiesResponse:
        return CapabilitiesResponse(
            version=__version__,
            http_auth="enabled" if settings.http_token else "disabled",
            cors_origins=settings.cors_origin_list,
            executor_configured=service.executor is not None,
            providers=_capabilities(service),
        )


def _register_overview(app: FastAPI, service: OverviewService, auth_dep: Any) -> None:
    """Register overview, plan and account discovery endpoints."""

    @app.post(
        "/overview",
        response_model=OverviewResponse,
        dependencies=[Depends(auth_dep)],
        summary="Run an overview request across providers",
    )
    async def overview(req: OverviewHTTPRequest):
        request = req.to_domain()
        if req.session_id:
            result = await service.session(req.session_id).refresh(request)
            if result is None:
                return _error(
                    status.HTTP_409_CONFLICT,
                    "Request superseded by a newer one in the same session",
                    "superseded",
                )
        else:
            result = await service.overview(request)
        table = result.table
        return OverviewResponse(
            request_id=result.request_id or get_request_id(),
            generation=result.generation,
            rows=table.rows,
            provider_errors=list(table.provider_errors.values()),
            duplicates=[list(identity) for identity in table.duplicates],
            queries=result.queries,
        )

    @app.post(
        "/overview/plan",
        response_model=PlanResponse,
        dependencies=[Depends(auth_dep)],
        summary="Render provider queries without running them",
    )
    async def overview_plan(req: OverviewHTTPRequest) -> PlanResponse:
        plan = service.plan(req.to_domain())
        return PlanResponse(
            queries=plan.queries, provider_errors=list(plan.provider_errors.values())
        )

    @app.get(
        "/accounts",
        response_model=AccountsResponse,
        dependencies=[Depends(auth_dep)],
        summary="Discover accounts through entity search",
    )
    async def accounts(
        entity_type: EntityType = EntityType.CLUSTER,
        provider: List[ProviderId] = Query(default=[]),
    ) -> AccountsResponse:
        found, errors = await service.discover_all(entity_type, provider)
        return AccountsResponse(
            entity_type=entity_type,
            accounts=found,
            provider_errors=list(errors.values()),
        )


def create_app(service: Optional[OverviewService] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    service: Optional[OverviewService]
        Pre-built service (tests). When omitted the service is built from
        ``KAFKAVIEW_*`` settings and the config file they name.
    """
    settings = EnvSettings()
    # Respect prior logging configuration from CLI; otherwise use env setting
    if not logging.getLogger().hasHandlers():
        setup_logging(settings.log_level)
    if service is None:
        service = build_service(settings)

    @asynccontextmanager
    async def lifespan(_app: Any):
        logger.info("http.startup")
        try:
            _log_startup_memory()
        except (psutil.Error, OSError):  # pragma: no cover
            logger.debug("http.startup.memory unavailable")
        await service.start()
        try:
            yield
        finally:
            logger.info("http.shutdown")
            await service.stop()
            executor = service.executor
            if executor is not None:
                await executor.aclose()

    app = FastAPI(title="kafkaview", version=__version__, lifespan=lifespan)
    app.add_middleware(CorrelationIdMiddleware)
    if settings.cors_origin_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origin_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Any, exc: Exception):
        return _error(400, str(exc), "validation_error")

    @app.exception_handler(UnknownProvider)
    async def unknown_provider_handler(_request: Any, exc: UnknownProvider):
        return _error(
            400,
            str(exc),
            exc.error_type,
            available_options=[p.value for p in service.registry.provider_ids()],
        )

    @app.exception_handler(ExecutorNotConfigured)
    async def executor_missing_handler(_request: Any, exc: ExecutorNotConfigured):
        return _error(503, str(exc), exc.error_type)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Any, exc: Any):
        # Pass through existing HTTP errors but ensure structured payload
        detail = getattr(exc, "detail", "")
        if isinstance(detail, dict) and {"detail", "error_type"} <= detail.keys():
            return JSONResponse(status_code=exc.status_code, content={"detail": detail})
        return _error(exc.status_code, str(detail) or "HTTP error", "http_error")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Any, exc: Exception):
        # Avoid leaking internals; log server-side, return generic error
        logger.error(
            "http.unhandled_exception",
            exc_info=exc,
            extra={"req_id": get_request_id()},
        )
        return _error(
            500,
            "Internal error. See server logs for request id.",
            "internal_server_error",
        )

    _ = (
        validation_exception_handler,
        unknown_provider_handler,
        executor_missing_handler,
        http_exception_handler,
        unhandled_exception_handler,
    )

    auth_dep = _make_auth_dependency(settings.http_token or None)
    _register_health(app)
    _register_capabilities(app, service, settings)
    _register_overview(app, service, auth_dep)

    startup_info: Dict[str, Any] = {
        "pid": os.getpid(),
        "providers": [p.value for p in service.enabled_providers()],
        "executor_configured": service.executor is not None,
    }
    logger.info("http.app.created", extra=startup_info)
    return app
