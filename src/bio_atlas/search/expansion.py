"""Graph expansion stage: bounded-radius neighbourhood of a seed set."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from loguru import logger

from bio_atlas.errors import InvalidInputError, StoreDataError
from bio_atlas.graph.client import MAX_HOPS, MIN_HOPS
from bio_atlas.schema import EMBEDDING_PROPERTY, infer_entity_type
from bio_atlas.search.models import Entity, RelationEdge, Subgraph
from bio_atlas.telemetry import get_metrics, get_tracer

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bio_atlas.graph.client import GraphClient

_tracer = get_tracer(__name__)


def _validate_hops(max_hops: Any) -> int:
    if isinstance(max_hops, bool) or not isinstance(max_hops, int) or not MIN_HOPS <= max_hops <= MAX_HOPS:
        raise InvalidInputError(f"max_hops must be {MIN_HOPS} or {MAX_HOPS}, got {max_hops!r}")
    return max_hops


def _validate_path_limit(path_limit: Any) -> int | None:
    if path_limit is None:
        return None
    if isinstance(path_limit, bool) or not isinstance(path_limit, int) or path_limit < 1:
        raise InvalidInputError(f"path_limit must be a positive integer, got {path_limit!r}")
    return path_limit


def _parse_node(raw: Any) -> Entity:
    if not isinstance(raw, dict) or not isinstance(raw.get("id"), str):
        raise StoreDataError(f"Traversal returned a malformed node: {raw!r}")
    labels = raw.get("labels") or []
    if not isinstance(labels, (list, tuple)):
        raise StoreDataError(f"Node {raw['id']} has malformed labels: {labels!r}")
    raw_props = raw.get("properties") or {}
    if not isinstance(raw_props, dict):
        raise StoreDataError(f"Node {raw['id']} has malformed properties: {raw_props!r}")
    props = {k: v for k, v in raw_props.items() if k != EMBEDDING_PROPERTY}
    name = props.get("name")
    return Entity(
        id=raw["id"],
        entity_type=str(infer_entity_type(list(labels))),
        display_name=str(name) if name else raw["id"],
        properties=props,
    )


def _parse_edge(raw: Any) -> RelationEdge:
    if not isinstance(raw, dict):
        raise StoreDataError(f"Traversal returned a malformed relationship: {raw!r}")
    for key in ("id", "type", "from_id", "to_id"):
        if not isinstance(raw.get(key), str):
            raise StoreDataError(f"Relationship is missing {key!r}: {raw!r}")
    props = raw.get("properties") or {}
    if not isinstance(props, dict):
        raise StoreDataError(f"Relationship {raw['id']} has malformed properties: {props!r}")
    return RelationEdge(
        id=raw["id"],
        type=raw["type"],
        from_entity_id=raw["from_id"],
        to_entity_id=raw["to_id"],
        properties=dict(props),
    )


def build_subgraph(records: Iterable[dict[str, Any]]) -> Subgraph:
    """Fold traversal rows into one subgraph, keeping the first occurrence of each id."""
    entities: dict[str, Entity] = {}
    edges: dict[str, RelationEdge] = {}
    for record in records:
        for raw in record.get("nodes") or ():
            node = _parse_node(raw)
            entities.setdefault(node.id, node)
        for raw in record.get("relationships") or ():
            edge = _parse_edge(raw)
            edges.setdefault(edge.id, edge)
    return Subgraph(entities=tuple(entities.values()), edges=tuple(edges.values()))


async def expand(
    graph: GraphClient,
    seed_ids: Iterable[str],
    max_hops: int,
    *,
    path_limit: int | None = None,
) -> Subgraph:
    """Return every entity and relation within *max_hops* of any seed.

    Seeds are part of the result.  Relationship direction is ignored while
    walking.  An empty seed set returns an empty subgraph without touching
    the store.

    Raises:
        InvalidInputError: *max_hops* is not 1 or 2, or *path_limit* is not positive.
        StoreUnavailableError: the store could not be reached.
        StoreDataError: the store returned a malformed record.
    """
    max_hops = _validate_hops(max_hops)
    path_limit = _validate_path_limit(path_limit)
    seeds = list(dict.fromkeys(seed_ids))
    if not seeds:
        return Subgraph()

    t0 = time.monotonic()
    with _tracer.start_as_current_span("search.expand", attributes={"seeds": len(seeds), "max_hops": max_hops}):
        records = await graph.traverse(seeds, max_hops, path_limit)
        subgraph = build_subgraph(records)
    elapsed = time.monotonic() - t0

    get_metrics().expansion_latency.record(elapsed, {"max_hops": max_hops})
    logger.debug(
        "expand: {} seeds, {} hops -> {} entities, {} edges in {:.3f}s",
        len(seeds),
        max_hops,
        len(subgraph.entities),
        len(subgraph.edges),
        elapsed,
    )
    return subgraph
