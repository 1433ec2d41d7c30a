"""Search package: hybrid retrieval over the biomedical knowledge graph."""

from __future__ import annotations

from bio_atlas.search.assembler import assemble
from bio_atlas.search.classifier import classify
from bio_atlas.search.context import ContextItem, ContextPayload, compose, count_tokens
from bio_atlas.search.embeddings import EmbedClient
from bio_atlas.search.engine import search
from bio_atlas.search.expansion import expand
from bio_atlas.search.models import (
    AssembledResult,
    Direction,
    Entity,
    QueryType,
    RelationEdge,
    SearchResult,
    SimilarityHit,
    Subgraph,
)
from bio_atlas.search.vector import vector_search

__all__ = [
    "AssembledResult",
    "ContextItem",
    "ContextPayload",
    "Direction",
    "EmbedClient",
    "Entity",
    "QueryType",
    "RelationEdge",
    "SearchResult",
    "SimilarityHit",
    "Subgraph",
    "assemble",
    "classify",
    "compose",
    "count_tokens",
    "expand",
    "search",
    "vector_search",
]
