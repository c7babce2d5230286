"""Map raw provider result rows onto :class:`NormalizedEntity`.

The normalizer preserves absence: a metric that is null, missing, or not a
finite number is left out of ``metrics`` instead of being coerced to zero,
because health classification distinguishes "zero" from "not reported".
Zero-coercion for display belongs to the ``... OR 0`` columns of throughput
templates.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import UnsupportedAttribute
from .models import (
    ACCOUNT_ID,
    CLUSTER_NAME,
    ENTITY_IDENTITY,
    IDENTITY_ATTRIBUTES,
    METRIC_ATTRIBUTES,
    EntityType,
    GroupBy,
    NormalizedEntity,
    ProviderId,
)
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


def coerce_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None when it is not numeric.

    Numeric strings are parsed; booleans, NaN, infinities and any other
    sentinel are treated as absent.
    """
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (OverflowError, ValueError):
        return None
    return number if math.isfinite(number) else None


def coerce_text(value: Any) -> Optional[str]:
    """Return an identity value as text, or None when it is empty."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    return text or None


def first_text(row: Mapping[str, Any], candidates: Sequence[str]) -> Optional[str]:
    """First non-empty candidate value in ``row`` as text."""
    for name in candidates:
        text = coerce_text(row.get(name))
        if text is not None:
            return text
    return None


def first_number(row: Mapping[str, Any], candidates: Sequence[str]) -> Optional[float]:
    """First candidate value in ``row`` that is a usable number."""
    for name in candidates:
        number = coerce_number(row.get(name))
        if number is not None:
            return number
    return None


class ResultNormalizer:
    """Normalize one provider's raw rows.

    Parameters
    ----------
    registry: ProviderRegistry
        Source of attribute candidate lists.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    def _candidates(
        self, provider_id: ProviderId, logical_name: str
    ) -> Tuple[str, ...]:
        try:
            return self._registry.resolve_attribute(provider_id, logical_name)
        except UnsupportedAttribute:
            return ()

    def normalize(
        self,
        provider_id: ProviderId,
        entity_type: EntityType,
        raw_rows: Iterable[Mapping[str, Any]],
        *,
        group_by: Optional[GroupBy] = None,
        account_scope: Sequence[str] = (),
    ) -> List[NormalizedEntity]:
        """Return entities for every attributable row, in row order.

        Parameters
        ----------
        provider_id: ProviderId
            Provider that produced the rows.
        entity_type: EntityType
            Entity kind the query listed.
        raw_rows: Iterable[Mapping[str, Any]]
            Rows as returned by the executor (alias to value).
        group_by: Optional[GroupBy]
            Group dimension of the query, copied into ``attributes``.
        account_scope: Sequence[str]
            Accounts the query ran against. A row without an account id is
            attributed to the scope only when it holds exactly one account.

        Returns
        -------
        List[NormalizedEntity]
            Unclassified entities; rows without identity are dropped.
        """
        identity_name = ENTITY_IDENTITY[entity_type]
        identity_candidates = self._candidates(provider_id, identity_name)
        if not identity_candidates:
            logger.debug(
                "normalize.no_identity_mapping",
                extra={"provider": provider_id.value, "entity_type": entity_type.value},
            )
            return []

        identity_lookup: Dict[str, Tuple[str, ...]] = {
            name: self._candidates(provider_id, name) for name in IDENTITY_ATTRIBUTES
        }
        metric_lookup: Dict[str, Tuple[str, ...]] = {
            name: self._candidates(provider_id, name) for name in METRIC_ATTRIBUTES
        }
        account_candidates = self._candidates(provider_id, ACCOUNT_ID)
        group_candidates = (
            self._candidates(provider_id, group_by.value) if group_by else ()
        )
        default_account = account_scope[0] if len(account_scope) == 1 else None

        entities: List[NormalizedEntity] = []
        dropped = 0
        for row in raw_rows:
            identity = first_text(row, identity_candidates)
            account_id = first_text(row, account_candidates) or default_account
            if identity is None or account_id is None:
                dropped += 1
                continue

            attributes: Dict[str, str] = {}
            for attr_name, candidates in identity_lookup.items():
                text = first_text(row, candidates)
                if text is not None:
                    attributes[attr_name] = text
            if group_by is not None:
                group_value = first_text(row, group_candidates)
                if group_value is not None:
                    attributes[group_by.value] = group_value

            metrics: Dict[str, float] = {}
            for metric_name, candidates in metric_lookup.items():
                number = first_number(row, candidates)
                if number is not None:
                    metrics[metric_name] = number

            name = identity
            cluster = attributes.get(CLUSTER_NAME)
            if entity_type is not EntityType.CLUSTER and cluster:
                name = f"{cluster}/{identity}"

            entities.append(
                NormalizedEntity(
                    entity_type=entity_type,
                    provider_id=provider_id,
                    account_id=account_id,
                    name=name,
                    metrics=metrics,
                    attributes=attributes,
                )
            )

        if dropped:
            logger.debug(
                "normalize.rows_dropped",
                extra={"provider": provider_id.value, "dropped": dropped},
            )
        return entities
