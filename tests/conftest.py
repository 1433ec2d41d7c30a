"""Shared test fixtures for Bio Atlas."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field
from typing import Any

import pytest
from loguru import logger

from bio_atlas.errors import InvalidInputError
from bio_atlas.graph.client import GraphClient
from bio_atlas.settings import BioAtlasSettings, SearchSettings

TEST_DIM = 4


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


@dataclass
class FakeNode:
    id: str
    labels: list[str]
    properties: dict[str, Any] = field(default_factory=dict)
    embedding: list[float] | None = None


def cosine_score(a: list[float], b: list[float]) -> float:
    """Neo4j-style normalised cosine similarity in [0, 1]."""
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return (1 + dot / norm) / 2 if norm else 0.0


class InMemoryGraph:
    """Fake store with the ``GraphClient`` retrieval surface.

    Returns records in the same shape as the Cypher queries and records the
    start of every call against an injectable clock.
    """

    def __init__(self, dimension: int = TEST_DIM, clock=None) -> None:
        self.dimension = dimension
        self.nodes: dict[str, FakeNode] = {}
        self.rels: list[dict[str, Any]] = []
        self.calls: list[tuple[str, float]] = []
        self._clock = clock or itertools.count().__next__

    # -- building ------------------------------------------------------------

    def add_node(
        self,
        node_id: str,
        labels: list[str] | str,
        embedding: list[float] | None = None,
        **properties: Any,
    ) -> FakeNode:
        labels = [labels] if isinstance(labels, str) else list(labels)
        node = FakeNode(node_id, labels, {"name": node_id, **properties}, embedding)
        self.nodes[node_id] = node
        return node

    def add_rel(self, rel_id: str, rel_type: str, src: str, dst: str, **properties: Any) -> None:
        self.rels.append({"id": rel_id, "type": rel_type, "from": src, "to": dst, "properties": properties})

    def chain(self, length: int, label: str = "Drug") -> list[str]:
        """Build n0 -> n1 -> ... -> n{length-1} and return the ids."""
        ids = [f"n{i}" for i in range(length)]
        for node_id in ids:
            self.add_node(node_id, label)
        for i in range(length - 1):
            self.add_rel(f"r{i}", "LINKS", ids[i], ids[i + 1])
        return ids

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    # -- GraphClient surface -------------------------------------------------

    async def query_similar(self, indexes, k, vector):
        self.calls.append(("query_similar", self._clock()))
        rows: list[dict[str, Any]] = []
        for _index_name, entity_type in indexes:
            candidates = [
                (cosine_score(vector, node.embedding), node)
                for node in self.nodes.values()
                if entity_type in node.labels and node.embedding is not None
            ]
            candidates.sort(key=lambda c: c[0], reverse=True)
            for score, node in candidates[:k]:
                rows.append(
                    {
                        "id": node.id,
                        "entity_type": entity_type,
                        "labels": list(node.labels),
                        "properties": {**node.properties, "embedding": None},
                        "score": score,
                    }
                )
        return rows

    async def traverse(self, seed_ids, max_hops, path_limit=None):
        self.calls.append(("traverse", self._clock()))
        rows: list[dict[str, Any]] = []
        for seed in seed_ids:
            if seed not in self.nodes:
                continue
            paths: list[tuple[list[str], list[str]]] = []
            self._walk(seed, [seed], [], max_hops, paths)
            if path_limit is not None:
                paths = paths[:path_limit]
            if not paths:
                rows.append({"nodes": [self._node_map(seed)], "relationships": []})
            for node_ids, rel_ids in paths:
                rows.append(
                    {
                        "nodes": [self._node_map(n) for n in node_ids],
                        "relationships": [self._rel_map(r) for r in rel_ids],
                    }
                )
        return rows

    def _walk(self, current, node_ids, rel_ids, remaining, out) -> None:
        if remaining == 0:
            return
        for rel in self.rels:
            if rel["id"] in rel_ids:
                continue
            if rel["from"] == current:
                nxt = rel["to"]
            elif rel["to"] == current:
                nxt = rel["from"]
            else:
                continue
            path_nodes = [*node_ids, nxt]
            path_rels = [*rel_ids, rel["id"]]
            out.append((path_nodes, path_rels))
            self._walk(nxt, path_nodes, path_rels, remaining - 1, out)

    def _node_map(self, node_id: str) -> dict[str, Any]:
        node = self.nodes[node_id]
        return {"id": node.id, "labels": list(node.labels), "properties": {**node.properties, "embedding": None}}

    def _rel_map(self, rel_id: str) -> dict[str, Any]:
        rel = next(r for r in self.rels if r["id"] == rel_id)
        return {
            "id": rel["id"],
            "type": rel["type"],
            "from_id": rel["from"],
            "to_id": rel["to"],
            "properties": dict(rel["properties"]),
        }


class FakeEmbed:
    """Embedding gateway stand-in: fixed vector per text, default otherwise."""

    def __init__(self, default: list[float] | None = None) -> None:
        self.default = default or [1.0, 0.0, 0.0, 0.0]
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[str] = []

    async def embed_one(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise InvalidInputError("Cannot embed empty text")
        self.calls.append(text)
        return self.vectors.get(text, self.default)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    """Default settings (no bioatlas.toml lookup beyond the repo)."""
    return BioAtlasSettings()


@pytest.fixture
def search_settings():
    return SearchSettings()


@pytest.fixture
def graph():
    return InMemoryGraph()


@pytest.fixture
def embed():
    return FakeEmbed()


@pytest.fixture
def biomed_graph():
    """Small drug/disease/protein graph with embeddings."""
    g = InMemoryGraph()
    g.add_node(
        "aspirin",
        "Drug",
        [1.0, 0.0, 0.0, 0.0],
        indication="Pain and fever",
        mechanism_of_action="COX inhibitor",
    )
    g.add_node("ibuprofen", "Drug", [0.9, 0.1, 0.0, 0.0], indication="Inflammation")
    g.add_node(
        "migraine",
        "Disease",
        [0.8, 0.2, 0.0, 0.0],
        mondo_definition="A recurrent headache disorder",
        mayo_symptoms="Throbbing pain",
    )
    g.add_node("ptgs1", "Protein", [0.0, 1.0, 0.0, 0.0], synonyms=["COX-1", "PGHS-1"])
    g.add_node("arachidonic", "Pathway")
    g.add_rel("e1", "TREATS", "aspirin", "migraine")
    g.add_rel("e2", "TARGETS", "aspirin", "ptgs1")
    g.add_rel("e3", "PARTICIPATES_IN", "ptgs1", "arachidonic")
    return g


@pytest.fixture
async def graph_client(settings):
    """Async GraphClient fixture: skips if Neo4j is unreachable.

    Test nodes carry ``_bioatlas_test`` and are deleted after the test.
    """
    client = GraphClient(settings)
    try:
        await client.ping()
    except Exception:
        await client.close()
        pytest.skip("Neo4j not available")

    yield client

    await client.execute("MATCH (n {_bioatlas_test: true}) DETACH DELETE n")
    await client.close()


@pytest.fixture
def caplog_loguru():
    """Collect loguru messages emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
