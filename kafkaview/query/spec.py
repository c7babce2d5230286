"""Immutable query description and its textual rendering.

A :class:`QuerySpec` describes an aggregation query semantically (select,
source, where, facet, order, limit). Rendering to the SQL-like query language
is a pure serialization step: nested specs become subqueries in the ``FROM``
position, and every attribute fallback has already been expanded into
explicit columns by the provider templates.
"""

from __future__ import annotations

import re
from typing import FrozenSet, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_LIMIT = 2000
"""Provider-independent upper bound for ``LIMIT``."""

DEFAULT_LIMIT = 100

_BARE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def capped_limit(value: int) -> int:
    """Validate a row limit and clamp it to :data:`MAX_LIMIT`."""
    if value < 1:
        raise ValueError("limit must be a positive integer")
    return min(value, MAX_LIMIT)


def quote_name(name: str) -> str:
    """Quote an attribute name with backticks when it is not a bare name."""
    if name == "*" or _BARE_NAME.match(name):
        return name
    return "`" + name.replace("`", "``") + "`"


def quote_value(value: str) -> str:
    """Render a string literal with single quotes and backslash escaping."""
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class SelectItem(BaseModel):
    """One aggregation column.

    Attributes
    ----------
    function: str
        Aggregation function name (``latest``, ``average``, ``sum``, ...).
    argument: str
        Attribute name, inner alias, or ``*``.
    alias: str
        Output column name. Provider templates alias metric columns with the
        backend attribute name so the normalizer can resolve fallbacks.
    or_zero: bool
        Render ``... OR 0`` so unreported values display as zero. Only
        throughput templates that feed display columns set this.
    """

    model_config = ConfigDict(frozen=True)

    function: str
    argument: str
    alias: str
    or_zero: bool = False

    def render(self) -> str:
        expr = f"{self.function}({quote_name(self.argument)})"
        if self.or_zero:
            expr += " OR 0"
        return f"{expr} AS {quote_value(self.alias)}"


class OrderBy(BaseModel):
    """Optional ordering of the result rows."""

    model_config = ConfigDict(frozen=True)

    expression: str
    descending: bool = True

    def render(self) -> str:
        direction = "DESC" if self.descending else "ASC"
        return f"ORDER BY {quote_name(self.expression)} {direction}"


class QuerySpec(BaseModel):
    """Semantic description of one query.

    Attributes
    ----------
    select: Tuple[SelectItem, ...]
        Ordered aggregation expressions with aliases.
    source: Union[str, QuerySpec]
        Event/entity type name, or a nested spec for two-level aggregation.
    where: Tuple[str, ...]
        Predicate clauses, ANDed. Each clause must be self-contained.
    facet_by: Tuple[str, ...]
        Grouping expressions.
    order_by: Optional[OrderBy]
        Optional ordering.
    limit: int
        Positive row limit, capped at :data:`MAX_LIMIT`.

    Notes
    -----
    When ``source`` is nested, the outer ``select`` arguments and
    ``facet_by`` may only reference names produced by the inner ``select``
    aliases or ``facet_by``. Violations are rejected at construction.
    """

    model_config = ConfigDict(frozen=True)

    select: Tuple[SelectItem, ...] = Field(..., min_length=1)
    source: Union[str, "QuerySpec"]
    where: Tuple[str, ...] = ()
    facet_by: Tuple[str, ...] = ()
    order_by: Optional[OrderBy] = None
    limit: int = DEFAULT_LIMIT

    @field_validator("limit")
    @classmethod
    def _cap_limit(cls, value: int) -> int:
        return capped_limit(value)

    @model_validator(mode="after")
    def _check_nested_references(self) -> "QuerySpec":
        if isinstance(self.source, QuerySpec):
            produced = self.source.output_names
            unknown = [
                item.argument
                for item in self.select
                if item.argument != "*" and item.argument not in produced
            ]
            unknown += [facet for facet in self.facet_by if facet not in produced]
            if unknown:
                raise ValueError(
                    "outer query references names the inner query does not "
                    f"produce: {', '.join(unknown)}"
                )
        return self

    @property
    def is_nested(self) -> bool:
        return isinstance(self.source, QuerySpec)

    @property
    def output_names(self) -> FrozenSet[str]:
        """Column names this query produces (select aliases and facets)."""
        return frozenset(item.alias for item in self.select) | frozenset(
            self.facet_by
        )

    @property
    def innermost(self) -> "QuerySpec":
        spec = self
        while isinstance(spec.source, QuerySpec):
            spec = spec.source
        return spec

    @property
    def event_type(self) -> str:
        """Event or entity type name the innermost query reads from."""
        return self.innermost.source  # type: ignore[return-value]

    def with_predicates(self, *clauses: str) -> "QuerySpec":
        """Return a copy with extra ``where`` clauses on the innermost query.

        Raw attributes only exist at the innermost level, so account scope and
        filters always apply there. Empty clauses are ignored.
        """
        extra = tuple(c for c in clauses if c)
        if not extra:
            return self
        if isinstance(self.source, QuerySpec):
            return self.model_copy(
                update={"source": self.source.with_predicates(*extra)}
            )
        return self.model_copy(update={"where": self.where + extra})

    def with_limit(self, limit: int) -> "QuerySpec":
        """Return a copy of the outermost query with a new (capped) limit."""
        return self.model_copy(update={"limit": capped_limit(limit)})

    def render(self) -> str:
        """Serialize to the query language."""
        parts = ["SELECT " + ", ".join(item.render() for item in self.select)]
        if isinstance(self.source, QuerySpec):
            parts.append(f"FROM ({self.source.render()})")
        else:
            parts.append(f"FROM {self.source}")
        if self.where:
            parts.append("WHERE " + " AND ".join(self.where))
        if self.facet_by:
            parts.append("FACET " + ", ".join(quote_name(f) for f in self.facet_by))
        if self.order_by is not None:
            parts.append(self.order_by.render())
        parts.append(f"LIMIT {self.limit}")
        return " ".join(parts)


QuerySpec.model_rebuild()
