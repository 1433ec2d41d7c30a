"""Keyword router that picks a retrieval strategy for a query."""

from __future__ import annotations

from bio_atlas.search.models import QueryType

# Evaluated in order; first match wins.  Keyword sets overlap on ambiguous
# queries ("pathways like X"), so the order is part of the contract.
_RULES: tuple[tuple[tuple[str, ...], QueryType], ...] = (
    (("similar", "like"), QueryType.SEMANTIC),
    (("pathway", "mechanism"), QueryType.STRUCTURAL),
    (("list all", "show all"), QueryType.EXACT),
)


def classify(query: str) -> QueryType:
    """Return the retrieval strategy for *query* (case-insensitive substring match)."""
    lowered = query.lower()
    for keywords, query_type in _RULES:
        if any(kw in lowered for kw in keywords):
            return query_type
    return QueryType.HYBRID
