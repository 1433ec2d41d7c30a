"""Vector similarity stage: query vector to ranked, typed similarity hits."""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING, Any

from loguru import logger

from bio_atlas.errors import InvalidInputError, StoreDataError
from bio_atlas.schema import EMBEDDING_PROPERTY, EntityType, index_name_for
from bio_atlas.search.models import Entity, SimilarityHit
from bio_atlas.telemetry import get_metrics, get_tracer

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from bio_atlas.graph.client import GraphClient

_tracer = get_tracer(__name__)

DEFAULT_LIMIT = 10


def _resolve_types(entity_types: Iterable[str] | None) -> list[EntityType]:
    """Validate and normalise the type filter; ``None`` means every indexed type."""
    if entity_types is None:
        return list(EntityType)
    if isinstance(entity_types, str):
        entity_types = [entity_types]
    resolved: list[EntityType] = []
    for raw in entity_types:
        try:
            et = EntityType(raw)
        except ValueError:
            valid = ", ".join(str(e) for e in EntityType)
            raise InvalidInputError(f"Unknown entity type {raw!r} (expected one of: {valid})") from None
        if et not in resolved:
            resolved.append(et)
    if not resolved:
        raise InvalidInputError("entity_types filter is empty; pass None to search every type")
    return resolved


def _validate_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InvalidInputError(f"limit must be a positive integer, got {limit!r}")
    return limit


def _entity_from_record(entity_id: str, entity_type: str, properties: dict[str, Any] | None) -> Entity:
    props = {k: v for k, v in (properties or {}).items() if k != EMBEDDING_PROPERTY}
    name = props.get("name")
    return Entity(
        id=entity_id,
        entity_type=entity_type,
        display_name=str(name) if name else entity_id,
        properties=props,
    )


def _parse_hit(record: dict[str, Any], allowed: set[str]) -> SimilarityHit:
    """Convert one store record into a hit, rejecting anything malformed."""
    entity_id = record.get("id")
    if not isinstance(entity_id, str) or not entity_id:
        raise StoreDataError(f"Similarity record without an entity id: {record!r}")
    entity_type = record.get("entity_type")
    if entity_type not in allowed:
        raise StoreDataError(f"Similarity record {entity_id} has unexpected entity type {entity_type!r}")
    score = record.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or math.isnan(score):
        raise StoreDataError(f"Similarity record {entity_id} has non-numeric score {score!r}")
    if not 0.0 <= score <= 1.0:
        raise StoreDataError(f"Similarity record {entity_id} has score {score} outside [0, 1]")
    properties = record.get("properties")
    if properties is not None and not isinstance(properties, dict):
        raise StoreDataError(f"Similarity record {entity_id} has malformed properties")
    return SimilarityHit(entity=_entity_from_record(entity_id, str(entity_type), properties), score=float(score))


def rank_hits(hits: Sequence[SimilarityHit], limit: int) -> list[SimilarityHit]:
    """Sort by score descending (stable), keep the best hit per entity id, cut to *limit*."""
    ordered = sorted(hits, key=lambda h: h.score, reverse=True)
    seen: set[str] = set()
    ranked: list[SimilarityHit] = []
    for hit in ordered:
        if hit.entity.id in seen:
            continue
        seen.add(hit.entity.id)
        ranked.append(hit)
        if len(ranked) == limit:
            break
    return ranked


async def vector_search(
    graph: GraphClient,
    vector: Sequence[float],
    entity_types: Iterable[str] | None = None,
    limit: int = DEFAULT_LIMIT,
    *,
    latency_warn_s: float = 1.0,
) -> list[SimilarityHit]:
    """Return up to *limit* entities most similar to *vector*, best first.

    Every requested type's index is queried for its top *limit* neighbours in
    a single store round-trip; the candidates are merged, deduplicated and
    cut down to the global top *limit*.

    Raises:
        InvalidInputError: wrong vector dimension, bad limit, or bad type filter.
        StoreUnavailableError: the store could not be reached.
        StoreDataError: the store returned a malformed record.
    """
    if len(vector) != graph.dimension:
        raise InvalidInputError(f"Query vector has {len(vector)} dimensions, index expects {graph.dimension}")
    limit = _validate_limit(limit)
    types = _resolve_types(entity_types)
    indexes = [(index_name_for(et), str(et)) for et in types]

    t0 = time.monotonic()
    with _tracer.start_as_current_span("search.vector", attributes={"limit": limit, "types": len(types)}):
        records = await graph.query_similar(indexes, limit, list(vector))
        hits = [_parse_hit(r, {str(et) for et in types}) for r in records]
        ranked = rank_hits(hits, limit)
    elapsed = time.monotonic() - t0

    get_metrics().vector_search_latency.record(elapsed)
    logger.debug("vector_search: {} candidates -> {} hits in {:.3f}s", len(records), len(ranked), elapsed)
    if elapsed > latency_warn_s:
        logger.warning("vector_search took {:.3f}s (threshold {:.3f}s)", elapsed, latency_warn_s)
    return ranked
