"""Merge similarity hits and expansion output into one result bundle."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

from bio_atlas.search.models import AssembledResult, Direction, Subgraph

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bio_atlas.search.models import RelationEdge, SimilarityHit


def edge_direction(edge: RelationEdge, seed_ids: frozenset[str] | set[str]) -> Direction:
    """Classify *edge* relative to the seed set."""
    src_seed = edge.from_entity_id in seed_ids
    dst_seed = edge.to_entity_id in seed_ids
    if src_seed and dst_seed:
        return Direction.INTERNAL
    if src_seed:
        return Direction.OUTGOING
    if dst_seed:
        return Direction.INCOMING
    return Direction.DISTAL


def hop_distances(subgraph: Subgraph, seed_ids: Sequence[str]) -> dict[str, int]:
    """BFS distance from the nearest seed for each subgraph entity, edges undirected.

    Entities the subgraph's own edges cannot reach from a seed are omitted.
    """
    adjacency: dict[str, list[str]] = {}
    for edge in subgraph.edges:
        adjacency.setdefault(edge.from_entity_id, []).append(edge.to_entity_id)
        adjacency.setdefault(edge.to_entity_id, []).append(edge.from_entity_id)

    present = subgraph.entity_ids
    distances: dict[str, int] = {}
    queue: deque[str] = deque()
    for seed in seed_ids:
        if seed in present and seed not in distances:
            distances[seed] = 0
            queue.append(seed)
    while queue:
        current = queue.popleft()
        for neighbour in adjacency.get(current, ()):
            if neighbour in present and neighbour not in distances:
                distances[neighbour] = distances[current] + 1
                queue.append(neighbour)
    return distances


def assemble(
    hits: Sequence[SimilarityHit],
    subgraph: Subgraph,
    *,
    seeds_expanded: bool,
) -> AssembledResult:
    """Combine *hits* and *subgraph* into an :class:`AssembledResult`.

    Hit order is kept as given.  When the hits were used as expansion seeds,
    every hit entity is guaranteed to appear in ``graph_data`` (isolated
    nodes may be missing from traversal output).
    """
    graph_data = subgraph
    if seeds_expanded:
        present = subgraph.entity_ids
        missing = []
        for hit in hits:
            if hit.entity.id not in present:
                missing.append(hit.entity)
                present = present | {hit.entity.id}
        if missing:
            graph_data = Subgraph(entities=(*subgraph.entities, *missing), edges=subgraph.edges)

    seed_ids = [hit.entity.id for hit in hits]
    seed_set = frozenset(seed_ids)
    directions = {edge.id: edge_direction(edge, seed_set) for edge in graph_data.edges}
    return AssembledResult(
        entities=tuple(hits),
        graph_data=graph_data,
        relation_directions=directions,
        hop_distances=hop_distances(graph_data, seed_ids),
    )
