"""Helpers for writing provider query templates.

Templates alias every metric column with the backend attribute it reads, so
an attribute with several fallback names becomes several explicit columns and
the normalizer, not the query text, decides which one wins.
"""

from __future__ import annotations

from typing import Iterable, Tuple

from .spec import SelectItem


def columns(
    function: str, attributes: Iterable[str], *, or_zero: bool = False
) -> Tuple[SelectItem, ...]:
    """One aggregation column per attribute, aliased by the attribute name.

    In an outer query the attributes are the inner aliases, so the same
    helper re-aggregates inner columns under unchanged names.
    """
    return tuple(
        SelectItem(function=function, argument=name, alias=name, or_zero=or_zero)
        for name in attributes
    )
