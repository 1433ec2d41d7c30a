"""Graph package: Neo4j client for the biomedical knowledge graph."""

from __future__ import annotations

from bio_atlas.graph.client import MAX_HOPS, MIN_HOPS, GraphClient

__all__ = [
    "MAX_HOPS",
    "MIN_HOPS",
    "GraphClient",
]
