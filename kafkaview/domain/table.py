"""Merge classified per-provider results into one overview table."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from pydantic import BaseModel, Field

from ..utils.partial_results import classify_error, is_retryable
from .errors import DuplicateEntityIdentity
from .models import NormalizedEntity, ProviderId, TableRow

logger = logging.getLogger(__name__)

Identity = Tuple[str, str, str, str]


class ProviderError(BaseModel):
    """Per-provider error flag attached to an assembled table.

    Attributes
    ----------
    provider_id: ProviderId
        Provider whose rows are missing.
    error_type: str
        Machine-readable classification (e.g., "query_failed", "timeout").
    message: str
        Human-readable error message.
    retryable: bool
        Whether retrying the request later may succeed.
    """

    provider_id: ProviderId
    error_type: str
    message: str
    retryable: bool = False

    @classmethod
    def from_exception(
        cls, provider_id: ProviderId, exc: BaseException
    ) -> "ProviderError":
        error_type = classify_error(exc)
        return cls(
            provider_id=provider_id,
            error_type=error_type,
            message=str(exc) or type(exc).__name__,
            retryable=is_retryable(error_type, exc),
        )


class AssembledTable(BaseModel):
    """Merged overview table.

    Attributes
    ----------
    rows: List[TableRow]
        Rows sorted by account id, ties in provider arrival order.
    provider_errors: Dict[ProviderId, ProviderError]
        One flag per provider that contributed no rows because it failed.
    duplicates: List[Identity]
        Identities of rows dropped because an earlier row had the same one.
    """

    rows: List[TableRow] = Field(default_factory=list)
    provider_errors: Dict[ProviderId, ProviderError] = Field(default_factory=dict)
    duplicates: List[Identity] = Field(default_factory=list)

    @property
    def failed_providers(self) -> List[ProviderId]:
        return list(self.provider_errors.keys())


ProviderResult = Union[
    Sequence[Union[NormalizedEntity, TableRow]], ProviderError, BaseException
]


def account_sort_key(account_id: str) -> Tuple[int, int, str]:
    """Ascending account order; numeric ids compare numerically."""
    text = account_id.strip()
    # isdecimal, not isdigit: superscripts are digits that int() rejects.
    if text.isdecimal():
        return (0, int(text), text)
    return (1, 0, text)


class TableAssembler:
    """Merge results from every active provider.

    Parameters
    ----------
    group_key: Optional[str]
        Attribute copied into :attr:`TableRow.group` for grouped requests.
    """

    def __init__(self, group_key: Optional[str] = None) -> None:
        self._group_key = group_key

    def _to_row(self, item: Union[NormalizedEntity, TableRow]) -> TableRow:
        if isinstance(item, TableRow):
            return item
        return TableRow.from_entity(item, self._group_key)

    def assemble(
        self,
        per_provider_results: Mapping[ProviderId, ProviderResult],
        failures: Optional[Mapping[ProviderId, BaseException]] = None,
    ) -> AssembledTable:
        """Concatenate, de-duplicate and stably sort provider rows.

        A provider whose value is an exception or :class:`ProviderError`
        contributes zero rows and one error flag; the other providers are
        assembled normally. ``failures`` flags providers that never produced
        a result at all. Rows sharing an identity keep the first
        occurrence; each later one is logged and recorded as a
        :class:`DuplicateEntityIdentity`.
        """
        table = AssembledTable()
        seen: Set[Identity] = set()
        merged: List[TableRow] = []

        combined: Dict[ProviderId, ProviderResult] = dict(per_provider_results)
        for provider_id, exc in (failures or {}).items():
            combined.setdefault(provider_id, exc)

        for provider_id, result in combined.items():
            if isinstance(result, ProviderError):
                table.provider_errors[provider_id] = result
                continue
            if isinstance(result, BaseException):
                table.provider_errors[provider_id] = ProviderError.from_exception(
                    provider_id, result
                )
                continue
            for item in result:
                row = self._to_row(item)
                identity = row.identity
                if identity in seen:
                    duplicate = DuplicateEntityIdentity(identity)
                    logger.warning(
                        "table.duplicate_identity",
                        extra={"identity": identity, "error": str(duplicate)},
                    )
                    table.duplicates.append(identity)
                    continue
                seen.add(identity)
                merged.append(row)

        table.rows = sorted(merged, key=lambda r: account_sort_key(r.account_id))
        if table.provider_errors:
            logger.info(
                "table.assembled_with_errors",
                extra={
                    "rows": len(table.rows),
                    "failed": [p.value for p in table.provider_errors],
                },
            )
        return table
