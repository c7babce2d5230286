"""Command-line interface for kafkaview.

Runs one overview request (or renders its query plan) and prints the result
as JSON, or starts the HTTP server.

Usage
-----
    kafkaview --config config.json --entity-type Cluster --mode health
    kafkaview --plan --provider KAFKA_AGENT --entity-type Topic \\
        --filter clusterName=prod-east
    kafkaview --http --port 8080
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..adapters import get_executor, reset_executors
from ..config.models import EnvSettings
from ..domain.models import (
    AggregationMode,
    EntityType,
    FilterOperator,
    FilterSpec,
    GroupBy,
    OverviewRequest,
    ProviderId,
)
from ..observability import setup_logging
from .app import OverviewResult, OverviewService
from .http import build_service, create_app
from .models import OverviewResponse, PlanResponse

logger = logging.getLogger(__name__)


def _parse_accounts(values: Sequence[str]) -> Dict[ProviderId, List[str]]:
    """Parse ``PROVIDER=ID[,ID...]`` arguments."""
    scope: Dict[ProviderId, List[str]] = {}
    for value in values:
        provider, _, ids = value.partition("=")
        if not ids:
            raise ValueError(f"expected PROVIDER=ID[,ID...], got {value!r}")
        scope.setdefault(ProviderId(provider.strip()), []).extend(
            i.strip() for i in ids.split(",") if i.strip()
        )
    return scope


def _parse_filters(values: Sequence[str]) -> List[FilterSpec]:
    """Parse ``ATTRIBUTE=V1[,V2...]`` arguments; one value means equals."""
    filters = []
    for value in values:
        attribute, _, raw = value.partition("=")
        items = [v.strip() for v in raw.split(",") if v.strip()]
        if not attribute or not items:
            raise ValueError(f"expected ATTRIBUTE=VALUE[,VALUE...], got {value!r}")
        filters.append(
            FilterSpec(
                entity_attribute=attribute.strip(),
                operator=(
                    FilterOperator.EQUALS if len(items) == 1 else FilterOperator.IN
                ),
                values=items,
            )
        )
    return filters


def build_request(args: argparse.Namespace) -> OverviewRequest:
    """Translate parsed arguments into an :class:`OverviewRequest`."""
    return OverviewRequest(
        entity_type=EntityType(args.entity_type),
        aggregation_mode=AggregationMode(args.mode),
        providers=[ProviderId(p) for p in args.provider],
        group_by=GroupBy(args.group_by) if args.group_by else None,
        account_ids=_parse_accounts(args.account),
        filters=_parse_filters(args.filter),
        limit=args.limit,
    )


def _render_result(result: OverviewResult) -> str:
    table = result.table
    return OverviewResponse(
        request_id=result.request_id,
        generation=result.generation,
        rows=table.rows,
        provider_errors=list(table.provider_errors.values()),
        duplicates=[list(identity) for identity in table.duplicates],
        queries=result.queries,
    ).model_dump_json(indent=2)


async def _run_once(service: OverviewService, request: OverviewRequest) -> None:
    await service.start()
    try:
        print(_render_result(await service.overview(request)))
    finally:
        await service.stop()
        executor = service.executor
        if executor is not None:
            await executor.aclose()


async def _watch(
    service: OverviewService, request: OverviewRequest, interval: float
) -> None:
    """Refresh the overview every ``interval`` seconds until interrupted."""
    await service.start()
    try:
        while True:
            result = await service.refresh(request)
            if result is not None:
                print(_render_result(result), flush=True)
            await asyncio.sleep(interval)
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        await service.stop()
        executor = service.executor
        if executor is not None:
            await executor.aclose()


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="kafkaview multi-provider Kafka overview"
    )
    parser.add_argument("--config", help="Path to JSON app config")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging level (overrides environment)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (once sets DEBUG)",
    )
    parser.add_argument("--http", action="store_true", help="Run HTTP server")
    parser.add_argument(
        "--host", default="127.0.0.1", help="HTTP bind host (default 127.0.0.1)"
    )
    parser.add_argument("--port", type=int, default=8080, help="HTTP port")

    parser.add_argument(
        "--entity-type",
        dest="entity_type",
        default=EntityType.CLUSTER.value,
        choices=[e.value for e in EntityType],
    )
    parser.add_argument(
        "--mode",
        default=AggregationMode.HEALTH.value,
        choices=[m.value for m in AggregationMode],
    )
    parser.add_argument(
        "--provider",
        action="append",
        default=[],
        choices=[p.value for p in ProviderId],
        help="Provider to include (repeatable; default: all enabled)",
    )
    parser.add_argument(
        "--group-by", dest="group_by", choices=[g.value for g in GroupBy]
    )
    parser.add_argument(
        "--account",
        action="append",
        default=[],
        metavar="PROVIDER=ID[,ID]",
        help="Account scope per provider (repeatable)",
    )
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="ATTRIBUTE=VALUE[,VALUE]",
        help="Filter on a logical attribute (repeatable)",
    )
    parser.add_argument("--limit", type=int, help="Row limit per provider query")
    parser.add_argument(
        "--plan",
        action="store_true",
        help="Print rendered queries without running them",
    )
    parser.add_argument(
        "--watch",
        type=float,
        metavar="SECONDS",
        help="Refresh the overview periodically",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entrypoint.

    Returns the process exit code: 0 on success, 2 on invalid input.
    """
    parser = _parser()
    args = parser.parse_args(argv)

    settings = EnvSettings()
    if args.config:
        settings = settings.model_copy(update={"config": args.config})
    effective_level = args.log_level or (
        "DEBUG" if args.verbose > 0 else settings.log_level.upper()
    )
    # Apply early so subsequent imports use configured level
    setup_logging(effective_level)

    if args.http:
        uvicorn = importlib.import_module("uvicorn")
        logger.info("cli.http.start", extra={"host": args.host, "port": args.port})
        app = create_app(build_service(settings))
        uvicorn.run(
            app, host=args.host, port=args.port, log_level=effective_level.lower()
        )
        return 0

    if settings.config and not Path(settings.config).exists():
        parser.error(f"config file not found: {settings.config}")

    try:
        request = build_request(args)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    reset_executors()
    service = build_service(settings)
    if args.plan:
        plan = service.plan(request)
        print(
            PlanResponse(
                queries=plan.queries,
                provider_errors=list(plan.provider_errors.values()),
            ).model_dump_json(indent=2)
        )
        if service.executor is not None:
            asyncio.run(service.executor.aclose())
        return 0

    if get_executor() is None:
        print(
            "error: no query executor configured; set 'executor' in the config "
            "or KAFKAVIEW_API_KEY",
            file=sys.stderr,
        )
        return 2
    if args.watch:
        asyncio.run(_watch(service, request, args.watch))
    else:
        asyncio.run(_run_once(service, request))
    return 0


if __name__ == "__main__":
    sys.exit(main())
