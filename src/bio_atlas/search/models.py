"""Value types passed between retrieval stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bio_atlas.search.context import ContextPayload


class QueryType(StrEnum):
    SEMANTIC = "semantic"
    STRUCTURAL = "structural"
    EXACT = "exact"
    HYBRID = "hybrid"

    @property
    def requires_expansion(self) -> bool:
        """Exact listings skip graph expansion; every other strategy needs it."""
        return self is not QueryType.EXACT


class Direction(StrEnum):
    """Orientation of an expansion edge relative to the seed set."""

    OUTGOING = "outgoing"  # source is a seed
    INCOMING = "incoming"  # target is a seed
    INTERNAL = "internal"  # both endpoints are seeds
    DISTAL = "distal"  # neither endpoint is a seed


@dataclass(frozen=True)
class Entity:
    """A typed knowledge-graph node. Identity is the store-assigned id."""

    id: str
    entity_type: str
    display_name: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class SimilarityHit:
    """An entity paired with its cosine similarity to the query vector."""

    entity: Entity
    score: float


@dataclass(frozen=True)
class RelationEdge:
    id: str
    type: str
    from_entity_id: str
    to_entity_id: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class Subgraph:
    """Entities and edges produced by graph expansion, deduplicated by id."""

    entities: tuple[Entity, ...] = ()
    edges: tuple[RelationEdge, ...] = ()

    @property
    def entity_ids(self) -> frozenset[str]:
        return frozenset(e.id for e in self.entities)

    @property
    def edge_ids(self) -> frozenset[str]:
        return frozenset(e.id for e in self.edges)

    @property
    def is_empty(self) -> bool:
        return not self.entities and not self.edges

    def get(self, entity_id: str) -> Entity | None:
        """Look up an entity by id."""
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        return None


@dataclass(frozen=True)
class AssembledResult:
    """Merged evidence from vector search and graph expansion."""

    entities: tuple[SimilarityHit, ...]
    graph_data: Subgraph
    relation_directions: dict[str, Direction] = field(default_factory=dict)
    hop_distances: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    """Final artifact of one ``search`` call."""

    query_type: QueryType
    entities: tuple[SimilarityHit, ...]
    graph_data: Subgraph
    relation_directions: dict[str, Direction] = field(default_factory=dict)
    hop_distances: dict[str, int] = field(default_factory=dict)
    context: ContextPayload | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly rendering (used by the CLI ``--json`` mode)."""
        payload: dict[str, Any] = {
            "query_type": str(self.query_type),
            "entities": [
                {
                    "id": hit.entity.id,
                    "type": hit.entity.entity_type,
                    "name": hit.entity.display_name,
                    "score": hit.score,
                    "properties": hit.entity.properties,
                }
                for hit in self.entities
            ],
            "graph_data": {
                "entities": [
                    {"id": e.id, "type": e.entity_type, "name": e.display_name, "hops": self.hop_distances.get(e.id)}
                    for e in self.graph_data.entities
                ],
                "relationships": [
                    {
                        "id": r.id,
                        "type": r.type,
                        "from": r.from_entity_id,
                        "to": r.to_entity_id,
                        "direction": str(self.relation_directions.get(r.id, Direction.DISTAL)),
                    }
                    for r in self.graph_data.edges
                ],
            },
        }
        if self.context is not None:
            payload["context"] = {
                "text": self.context.render(),
                "total_tokens": self.context.total_tokens,
                "budget": self.context.budget,
                "confidence": self.context.confidence,
            }
        return payload
