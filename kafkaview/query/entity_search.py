"""Entity search predicates used for account discovery."""

from __future__ import annotations

from typing import Sequence

from ..domain.models import EntityType
from ..domain.registry import ProviderDescriptor
from .spec import quote_value


def entity_search_predicate(
    descriptors: Sequence[ProviderDescriptor],
    entity_type: EntityType,
    names: Sequence[str] = (),
) -> str:
    """Build an entity search predicate over ``domain`` and ``type``.

    Example: ``domain IN ('INFRA') AND type = 'ONHOSTKAFKACLUSTER'``.
    Providers that do not expose ``entity_type`` are left out; an optional
    ``name IN (...)`` clause narrows the search.

    Raises
    ------
    ValueError
        If none of the providers exposes ``entity_type``.
    """
    domains = []
    types = []
    for descriptor in descriptors:
        type_name = descriptor.entity_type_names.get(entity_type)
        if type_name is None:
            continue
        if descriptor.entity_domain not in domains:
            domains.append(descriptor.entity_domain)
        if type_name not in types:
            types.append(type_name)
    if not types:
        raise ValueError(f"no provider exposes {entity_type.value} entities")

    clauses = [f"domain IN ({', '.join(quote_value(d) for d in domains)})"]
    if len(types) == 1:
        clauses.append(f"type = {quote_value(types[0])}")
    else:
        clauses.append(f"type IN ({', '.join(quote_value(t) for t in types)})")
    unique_names = list(dict.fromkeys(names))
    if unique_names:
        clauses.append(f"name IN ({', '.join(quote_value(n) for n in unique_names)})")
    return " AND ".join(clauses)
