"""Tests for the result assembler."""

from __future__ import annotations

from bio_atlas.search.assembler import assemble, edge_direction, hop_distances
from bio_atlas.search.models import Direction, Entity, RelationEdge, SimilarityHit, Subgraph


def _entity(entity_id: str, entity_type: str = "Drug") -> Entity:
    return Entity(entity_id, entity_type, entity_id.title())


def _hit(entity_id: str, score: float) -> SimilarityHit:
    return SimilarityHit(_entity(entity_id), score)


def _edge(edge_id: str, src: str, dst: str, rel_type: str = "LINKS") -> RelationEdge:
    return RelationEdge(edge_id, rel_type, src, dst)


# a -> b -> c, d -> a
SUBGRAPH = Subgraph(
    entities=(_entity("a"), _entity("b"), _entity("c"), _entity("d")),
    edges=(_edge("ab", "a", "b"), _edge("bc", "b", "c"), _edge("da", "d", "a")),
)


class TestAssemble:
    def test_hit_order_preserved(self):
        hits = [_hit("b", 0.4), _hit("a", 0.9)]
        result = assemble(hits, SUBGRAPH, seeds_expanded=True)
        assert [h.entity.id for h in result.entities] == ["b", "a"]

    def test_missing_seed_added_when_expanded(self):
        hits = [_hit("a", 0.9), _hit("z", 0.8)]
        result = assemble(hits, SUBGRAPH, seeds_expanded=True)
        assert "z" in result.graph_data.entity_ids
        assert result.hop_distances["z"] == 0
        assert result.graph_data.edges == SUBGRAPH.edges

    def test_no_seed_injection_without_expansion(self):
        result = assemble([_hit("a", 0.9)], Subgraph(), seeds_expanded=False)
        assert result.graph_data.is_empty
        assert result.relation_directions == {}
        assert result.hop_distances == {}

    def test_empty_hits(self):
        result = assemble([], Subgraph(), seeds_expanded=True)
        assert result.entities == ()
        assert result.graph_data == Subgraph()

    def test_graph_data_never_none(self):
        result = assemble([_hit("a", 0.9)], SUBGRAPH, seeds_expanded=True)
        assert isinstance(result.graph_data.entities, tuple)
        assert isinstance(result.graph_data.edges, tuple)


class TestProvenance:
    def test_directions_relative_to_seeds(self):
        result = assemble([_hit("a", 0.9)], SUBGRAPH, seeds_expanded=True)
        assert result.relation_directions == {
            "ab": Direction.OUTGOING,
            "bc": Direction.DISTAL,
            "da": Direction.INCOMING,
        }

    def test_internal_edge(self):
        assert edge_direction(_edge("ab", "a", "b"), {"a", "b"}) == Direction.INTERNAL

    def test_hop_distances_undirected(self):
        assert hop_distances(SUBGRAPH, ["a"]) == {"a": 0, "b": 1, "d": 1, "c": 2}

    def test_hop_distances_nearest_seed(self):
        assert hop_distances(SUBGRAPH, ["a", "c"]) == {"a": 0, "c": 0, "b": 1, "d": 1}

    def test_unreachable_entities_omitted(self):
        sub = Subgraph(entities=(_entity("a"), _entity("x")), edges=())
        assert hop_distances(sub, ["a"]) == {"a": 0}
