"""Async Neo4j client for Bio Atlas.

Wraps the neo4j async driver (Bolt protocol).  One driver instance owns the
connection pool and is shared by all in-flight searches; every query opens a
scoped session that is released on success, error, and cancellation alike.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger
from neo4j import AsyncGraphDatabase
from neo4j.exceptions import AuthError, ClientError, DriverError, Neo4jError

from bio_atlas.errors import InvalidInputError, QueryTimeoutError, StoreDataError, StoreUnavailableError
from bio_atlas.schema import EMBEDDING_PROPERTY
from bio_atlas.telemetry import get_tracer

if TYPE_CHECKING:
    from collections.abc import Sequence

    from neo4j import AsyncDriver

    from bio_atlas.settings import BioAtlasSettings

_tracer = get_tracer(__name__)

# Hop radius accepted by ``traverse``.  Wider radii fan out without bound on
# densely connected biomedical graphs.
MIN_HOPS = 1
MAX_HOPS = 2

# Node projection that blanks the (large) embedding vector before it leaves the server.
_NODE_PROPS = f"{{.*, {EMBEDDING_PROPERTY}: null}}"


def _build_similarity_query(index_count: int) -> str:
    """Build a UNION ALL Cypher query over *index_count* vector indexes.

    Collapses the per-index ``db.index.vector.queryNodes`` calls into a single
    round-trip.  Index names and their entity types are bound as
    ``$index_<i>`` / ``$type_<i>`` parameters.
    """
    branches = [
        f"CALL db.index.vector.queryNodes($index_{i}, $k, $vector) YIELD node, score "
        f"RETURN elementId(node) AS id, $type_{i} AS entity_type, labels(node) AS labels, "
        f"node {_NODE_PROPS} AS properties, score"
        for i in range(index_count)
    ]
    return " UNION ALL ".join(branches)


def _build_traversal_query(max_hops: int, path_limit: int | None = None) -> str:
    """Build the bounded traversal query.

    Every path of length ``1..max_hops`` from each seed is returned, in either
    relationship direction.  Seeds without neighbours still produce one row
    (``OPTIONAL MATCH``) so they appear in the output at distance 0.
    """
    if isinstance(max_hops, bool) or not isinstance(max_hops, int) or not MIN_HOPS <= max_hops <= MAX_HOPS:
        msg = f"max_hops must be {MIN_HOPS} or {MAX_HOPS}, got {max_hops!r}"
        raise InvalidInputError(msg)
    if path_limit is not None and (isinstance(path_limit, bool) or not isinstance(path_limit, int) or path_limit < 1):
        raise InvalidInputError(f"path_limit must be a positive integer, got {path_limit!r}")
    limit_clause = f" LIMIT {path_limit}" if path_limit is not None else ""
    return (
        "MATCH (start) WHERE elementId(start) IN $seed_ids "
        "CALL { WITH start "
        f"OPTIONAL MATCH path = (start)-[*1..{max_hops}]-() "
        f"RETURN path{limit_clause} }} "
        "RETURN "
        f"[n IN coalesce(nodes(path), [start]) | {{id: elementId(n), labels: labels(n), properties: n {_NODE_PROPS}}}] "
        "AS nodes, "
        "[r IN coalesce(relationships(path), []) | {id: elementId(r), type: type(r), "
        "from_id: elementId(startNode(r)), to_id: elementId(endNode(r)), properties: properties(r)}] "
        "AS relationships"
    )


class GraphClient:
    """Async Neo4j client wrapping the neo4j Bolt driver.

    Lifecycle: construct → ping → use (concurrently) → close.
    """

    def __init__(self, settings: BioAtlasSettings) -> None:
        neo = settings.neo4j
        self._uri = neo.uri
        auth = (neo.username, neo.password) if neo.username else None
        self._driver: AsyncDriver = AsyncGraphDatabase.driver(
            self._uri,
            auth=auth,
            max_connection_pool_size=neo.max_connection_pool_size,
            connection_timeout=neo.connection_timeout_s,
        )
        self._database = neo.database
        self._dimension = settings.embeddings.dimension
        self._query_timeout_s = neo.query_timeout_s

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def dimension(self) -> int:
        """Vector dimension the store's indexes were built with."""
        return self._dimension

    async def ping(self) -> bool:
        """Health check: returns True if Neo4j is reachable."""
        records = await self.execute("RETURN 1 AS n")
        return len(records) == 1 and records[0]["n"] == 1

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Execute a read query and return results as a list of dicts.

        Driver failures are translated into the retrieval error taxonomy:
        rejected queries become ``StoreDataError``; connectivity, transient
        and server-side failures become ``StoreUnavailableError``.
        """
        with _tracer.start_as_current_span("graph.execute", attributes={"db.statement": query[:200]}):
            try:
                return await asyncio.wait_for(self._execute_inner(query, params), timeout=self._query_timeout_s)
            except TimeoutError:
                raise QueryTimeoutError(self._query_timeout_s, query[:120]) from None
            except AuthError as exc:
                logger.error("Neo4j authentication failed at {}: {}", self._uri, exc)
                raise StoreUnavailableError(f"Neo4j authentication failed: {exc}") from exc
            except ClientError as exc:
                logger.error("Neo4j rejected query {!r}: {}", query[:120], exc)
                raise StoreDataError(f"Neo4j rejected query: {exc}") from exc
            except (Neo4jError, DriverError, OSError) as exc:
                logger.error("Neo4j unavailable at {}: {}", self._uri, exc)
                raise StoreUnavailableError(f"Neo4j unavailable: {exc}") from exc

    async def _execute_inner(self, query: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Inner execute without timeout: used by ``execute()``."""
        async with self._driver.session(database=self._database) as session:
            result = await session.run(query, params or {})  # type: ignore[arg-type]  # dynamic Cypher
            return [dict(record) async for record in result]

    # -- Retrieval queries ---------------------------------------------------

    async def query_similar(
        self,
        indexes: Sequence[tuple[str, str]],
        k: int,
        vector: list[float],
    ) -> list[dict[str, Any]]:
        """Top-*k* cosine neighbours of *vector* in each of *indexes*, in one query.

        *indexes* is a sequence of ``(index_name, entity_type)`` pairs.  Returns
        ``[{"id", "entity_type", "labels", "properties", "score"}, ...]`` in
        store order (callers merge and sort).
        """
        if not indexes:
            return []
        params: dict[str, Any] = {"k": k, "vector": vector}
        for i, (index_name, entity_type) in enumerate(indexes):
            params[f"index_{i}"] = index_name
            params[f"type_{i}"] = str(entity_type)
        with _tracer.start_as_current_span("graph.query_similar", attributes={"k": k, "indexes": len(indexes)}):
            return await self.execute(_build_similarity_query(len(indexes)), params)

    async def traverse(
        self,
        seed_ids: Sequence[str],
        max_hops: int,
        path_limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """All paths of length ``1..max_hops`` from the seeds.

        Returns one row per path: ``{"nodes": [...], "relationships": [...]}``
        where nodes are ``{"id", "labels", "properties"}`` maps and
        relationships are ``{"id", "type", "from_id", "to_id", "properties"}``.
        """
        query = _build_traversal_query(max_hops, path_limit)
        with _tracer.start_as_current_span(
            "graph.traverse", attributes={"seeds": len(seed_ids), "max_hops": max_hops}
        ):
            return await self.execute(query, {"seed_ids": list(seed_ids)})

    async def list_vector_indexes(self) -> list[dict[str, Any]]:
        """Return name/state/label/property rows for every vector index."""
        return await self.execute(
            "SHOW VECTOR INDEXES YIELD name, state, labelsOrTypes, properties "
            "RETURN name, state, labelsOrTypes AS labels, properties"
        )

    async def close(self) -> None:
        """Close the driver and release pooled connections."""
        await self._driver.close()
