"""NerdGraph (GraphQL) query executor.

This adapter runs rendered queries and entity searches over the NerdGraph
GraphQL API. It encapsulates transport concerns (endpoint, API key header,
timeouts, bounded retries with exponential backoff) and translates every
failure into :class:`~kafkaview.domain.errors.QueryExecutionFailure`, so the
overview service can flag the offending provider and carry on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..domain.errors import QueryExecutionFailure
from ..utils.cache import Cache
from ..utils.correlation import get_request_id
from . import EntityRef, EntitySearchResult

logger = logging.getLogger(__name__)

NRQL_QUERY = """
query($accounts: [Int!]!, $nrql: Nrql!, $timeout: Seconds) {
  actor {
    nrql(accounts: $accounts, query: $nrql, timeout: $timeout) {
      results
    }
  }
}
""".strip()

ENTITY_SEARCH_QUERY = """
query($query: String!, $cursor: String) {
  actor {
    entitySearch(query: $query) {
      counts(facet: [TYPE]) {
        count
        facet
      }
      results(cursor: $cursor) {
        nextCursor
        entities {
          guid
          name
          accountId
          type
        }
      }
    }
  }
}
""".strip()

_RETRYABLE_STATUS = (429, 500, 502, 503, 504)
MAX_SEARCH_PAGES = 10


def _account_numbers(account_ids: Sequence[str]) -> List[int]:
    numbers = []
    for account_id in account_ids:
        try:
            numbers.append(int(str(account_id).strip()))
        except ValueError:
            raise QueryExecutionFailure(
                f"Account id {account_id!r} is not numeric"
            ) from None
    return numbers


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class NerdGraphAdapter:
    """Query executor and entity search over NerdGraph.

    Parameters
    ----------
    endpoint: str
        GraphQL endpoint URL (e.g., "https://api.newrelic.com/graphql").
    api_key: Optional[str]
        User API key sent in the ``API-Key`` header.
    timeout: int
        HTTP request timeout in seconds.
    query_timeout: int
        Server-side timeout requested for each query.
    max_retries: int
        Extra attempts after a retryable failure (timeouts, connection
        errors, 429 and 5xx).

    Attributes
    ----------
    _client: httpx.AsyncClient
        Shared async client configured with endpoint, timeout and headers.
    _search_cache: Cache[str, EntitySearchResult]
        Entity search results keyed by predicate.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: int = 30,
        *,
        query_timeout: int = 60,
        max_retries: int = 2,
        backoff_initial_ms: int = 200,
        backoff_multiplier: float = 2.0,
        cache_size: int = 256,
        cache_ttl_seconds: Optional[float] = 300.0,
    ) -> None:
        self._endpoint = endpoint
        self._client = httpx.AsyncClient(
            timeout=timeout, headers=self._headers(api_key)
        )
        self._timeout_seconds = timeout
        self._query_timeout = query_timeout
        self._max_retries = max(0, int(max_retries))
        self._backoff_initial_ms = max(0, int(backoff_initial_ms))
        self._backoff_multiplier = max(1.0, float(backoff_multiplier))
        self._search_cache: Cache[str, EntitySearchResult] = Cache(
            maxsize=cache_size, ttl_seconds=cache_ttl_seconds
        )
        logger.info(
            "nerdgraph.adapter.init",
            extra={"endpoint": endpoint, "timeout_seconds": timeout},
        )

    def inject_http_client_for_testing(self, client: Any) -> None:
        """Replace underlying HTTP client (testing only).

        This allows unit tests to provide a mock compatible with ``post()``.
        """
        self._client = client

    @staticmethod
    def _headers(api_key: Optional[str]) -> dict:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["API-Key"] = api_key
        return headers

    def _delay(self, attempt: int) -> float:
        return (self._backoff_initial_ms / 1000.0) * (self._backoff_multiplier**attempt)

    async def _post_graphql(
        self, query: str, variables: Dict[str, Any]
    ) -> Dict[str, Any]:
        """POST a GraphQL document and return its ``data`` object.

        Raises
        ------
        QueryExecutionFailure
            On exhausted retries, non-retryable statuses, invalid JSON or a
            GraphQL ``errors`` payload.
        """
        logger.debug(
            "nerdgraph.http.post",
            extra={"req_id": get_request_id(), "variables": list(variables.keys())},
        )
        attempt = 0
        while True:
            try:
                resp = await self._client.post(
                    self._endpoint, json={"query": query, "variables": variables}
                )
                resp.raise_for_status()
                break
            except httpx.TimeoutException as exc:
                if attempt >= self._max_retries:
                    raise QueryExecutionFailure(
                        f"Query timed out after {self._timeout_seconds}s "
                        f"({attempt + 1} attempts)",
                        retryable=True,
                        error_type="timeout",
                    ) from exc
                reason = "timeout"
            except httpx.ConnectError as exc:
                if attempt >= self._max_retries:
                    raise QueryExecutionFailure(
                        f"Could not connect to {self._endpoint}: {exc}",
                        retryable=True,
                        error_type="connection_error",
                    ) from exc
                reason = "connection_error"
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status not in _RETRYABLE_STATUS or attempt >= self._max_retries:
                    logger.error(
                        "nerdgraph.http.status_error",
                        extra={"req_id": get_request_id(), "status": status},
                    )
                    raise QueryExecutionFailure(
                        f"NerdGraph returned HTTP {status}",
                        retryable=status in _RETRYABLE_STATUS,
                        status_code=status,
                    ) from exc
                reason = f"http_{status}"
            delay = self._delay(attempt)
            logger.warning(
                "nerdgraph.http.retry",
                extra={
                    "req_id": get_request_id(),
                    "reason": reason,
                    "attempt": attempt + 1,
                    "max_retries": self._max_retries,
                    "delay_seconds": delay,
                },
            )
            await asyncio.sleep(delay)
            attempt += 1

        try:
            payload = resp.json()
        except ValueError as exc:
            raise QueryExecutionFailure("NerdGraph returned invalid JSON") from exc

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            messages = [str(e.get("message", e)) for e in errors if isinstance(e, dict)]
            timed_out = any(
                _dig(e, "extensions", "errorClass") == "TIMEOUT"
                for e in errors
                if isinstance(e, dict)
            )
            raise QueryExecutionFailure(
                "; ".join(messages) or "NerdGraph returned errors",
                retryable=timed_out,
                error_type="timeout" if timed_out else None,
            )
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise QueryExecutionFailure("NerdGraph response has no data")
        return data

    async def run_query(
        self, query: str, account_ids: Sequence[str]
    ) -> List[Dict[str, Any]]:
        """Run a rendered query across ``account_ids``.

        Returns
        -------
        List[Dict[str, Any]]
            Result rows, alias to value, in backend order.
        """
        accounts = _account_numbers(account_ids)
        if not accounts:
            raise QueryExecutionFailure("No account ids to query")
        data = await self._post_graphql(
            NRQL_QUERY,
            {"accounts": accounts, "nrql": query, "timeout": self._query_timeout},
        )
        results = _dig(data, "actor", "nrql", "results")
        if results is None:
            return []
        if not isinstance(results, list):
            raise QueryExecutionFailure("Unexpected NRQL results shape")
        rows = [row for row in results if isinstance(row, dict)]
        logger.debug(
            "nerdgraph.query.done",
            extra={"req_id": get_request_id(), "rows": len(rows)},
        )
        return rows

    async def search_entities(self, predicate: str) -> EntitySearchResult:
        """Search entities, following cursors; results are cached per predicate."""
        cached = self._search_cache.get(predicate)
        if cached is not None:
            logger.debug("nerdgraph.search.cache_hit", extra={"predicate": predicate})
            return cached

        result = EntitySearchResult()
        cursor: Optional[str] = None
        for _ in range(MAX_SEARCH_PAGES):
            data = await self._post_graphql(
                ENTITY_SEARCH_QUERY, {"query": predicate, "cursor": cursor}
            )
            search = _dig(data, "actor", "entitySearch") or {}
            if not result.counts:
                for facet in search.get("counts") or []:
                    key = facet.get("facet")
                    if isinstance(key, list):
                        key = "/".join(str(k) for k in key)
                    result.counts[str(key)] = int(facet.get("count") or 0)
            page = search.get("results") or {}
            for entity in page.get("entities") or []:
                account_id = str(entity.get("accountId", ""))
                result.entities.append(
                    EntityRef(
                        guid=str(entity.get("guid", "")),
                        name=str(entity.get("name", "")),
                        account_id=account_id,
                        entity_type=str(entity.get("type", "")),
                    )
                )
                if account_id and account_id not in result.accounts:
                    result.accounts.append(account_id)
            cursor = page.get("nextCursor")
            if not cursor:
                break
        else:
            logger.warning(
                "nerdgraph.search.truncated",
                extra={"predicate": predicate, "pages": MAX_SEARCH_PAGES},
            )

        self._search_cache.set(predicate, result)
        logger.info(
            "nerdgraph.search.done",
            extra={
                "req_id": get_request_id(),
                "accounts": len(result.accounts),
                "entities": len(result.entities),
            },
        )
        return result

    async def aclose(self) -> None:
        await self._client.aclose()
