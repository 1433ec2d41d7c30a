"""Hybrid search orchestrator.

Sequences classify → embed → vector search → (expand) → assemble →
(compose) for one query.  Stages run strictly one after another; a failure
at any stage ends the search with that stage recorded on the error.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from bio_atlas.errors import InvalidInputError, RetrievalError, SearchTimeoutError, Stage
from bio_atlas.search.assembler import assemble
from bio_atlas.search.classifier import classify
from bio_atlas.search.context import compose
from bio_atlas.search.expansion import expand
from bio_atlas.search.models import QueryType, SearchResult, Subgraph
from bio_atlas.search.vector import vector_search
from bio_atlas.telemetry import get_metrics, get_tracer

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bio_atlas.graph.client import GraphClient
    from bio_atlas.search.embeddings import EmbedClient
    from bio_atlas.settings import SearchSettings

_tracer = get_tracer(__name__)

# Expansion radius used by the orchestrator.
SEARCH_MAX_HOPS = 2


@dataclass
class _Progress:
    """Per-call record of the stage currently running."""

    stage: Stage = Stage.CLASSIFY


def _resolve_mode(mode: QueryType | str | None, query: str) -> QueryType:
    if mode is None:
        return classify(query)
    try:
        return QueryType(mode)
    except ValueError:
        valid = ", ".join(str(q) for q in QueryType)
        raise InvalidInputError(f"Unknown search mode {mode!r} (expected one of: {valid})") from None


async def search(
    graph: GraphClient,
    embed: EmbedClient,
    settings: SearchSettings,
    query: str,
    *,
    mode: QueryType | str | None = None,
    entity_types: Iterable[str] | None = None,
    limit: int | None = None,
    timeout_s: float | None = None,
    compose_context: bool = False,
) -> SearchResult:
    """Run one hybrid retrieval over the knowledge graph.

    Args:
        graph: Shared store client.
        embed: Shared embedding client.
        settings: Search defaults and limits.
        query: Free-text question.
        mode: Force a strategy instead of classifying *query*.
        entity_types: Restrict vector search to these entity types.
        limit: Number of similarity hits (default ``settings.default_limit``).
        timeout_s: End-to-end budget; ``None`` falls back to
            ``settings.default_timeout_s`` (itself ``None`` = unbounded).
        compose_context: Also build a token-bounded context payload.

    Raises:
        RetrievalError: any stage failure, with ``stage`` set to the failing stage.
        SearchTimeoutError: the time budget elapsed.
    """
    metrics = get_metrics()
    progress = _Progress()
    budget_s = timeout_s if timeout_s is not None else settings.default_timeout_s
    t0 = time.monotonic()

    with _tracer.start_as_current_span("search", attributes={"query.length": len(query)}) as span:
        try:
            pipeline = _run_pipeline(
                graph,
                embed,
                settings,
                query,
                progress,
                mode=mode,
                entity_types=entity_types,
                limit=limit,
                compose_context=compose_context,
            )
            if budget_s is None:
                result = await pipeline
            else:
                try:
                    result = await asyncio.wait_for(pipeline, timeout=budget_s)
                except TimeoutError:
                    logger.warning("search timed out after {}s during {}", budget_s, progress.stage)
                    raise SearchTimeoutError(budget_s, stage=progress.stage) from None
        except RetrievalError as exc:
            metrics.search_errors.add(1, {"stage": str(progress.stage)})
            span.set_attribute("error.stage", str(progress.stage))
            raise exc.at_stage(progress.stage)

        elapsed = time.monotonic() - t0
        span.set_attribute("query.type", str(result.query_type))
        span.set_attribute("result.entities", len(result.entities))

    metrics.search_count.add(1, {"query_type": str(result.query_type)})
    metrics.search_latency.record(elapsed, {"query_type": str(result.query_type)})
    metrics.search_results_count.record(len(result.entities))
    logger.debug(
        "search: type={} hits={} graph={}/{} in {:.3f}s",
        result.query_type,
        len(result.entities),
        len(result.graph_data.entities),
        len(result.graph_data.edges),
        elapsed,
    )
    return result


async def _run_pipeline(
    graph: GraphClient,
    embed: EmbedClient,
    settings: SearchSettings,
    query: str,
    progress: _Progress,
    *,
    mode: QueryType | str | None,
    entity_types: Iterable[str] | None,
    limit: int | None,
    compose_context: bool,
) -> SearchResult:
    progress.stage = Stage.CLASSIFY
    query_type = _resolve_mode(mode, query)
    hit_limit = settings.default_limit if limit is None else limit
    if not isinstance(hit_limit, bool) and isinstance(hit_limit, int) and hit_limit > settings.max_limit:
        raise InvalidInputError(f"limit {hit_limit} exceeds the maximum of {settings.max_limit}")

    progress.stage = Stage.EMBED
    vector = await embed.embed_one(query)

    progress.stage = Stage.VECTOR_SEARCH
    hits = await vector_search(
        graph,
        vector,
        entity_types,
        hit_limit,
        latency_warn_s=settings.vector_latency_warn_s,
    )

    subgraph = Subgraph()
    if query_type.requires_expansion:
        progress.stage = Stage.EXPAND
        subgraph = await expand(
            graph,
            [hit.entity.id for hit in hits],
            SEARCH_MAX_HOPS,
            path_limit=settings.expansion_path_limit,
        )

    progress.stage = Stage.ASSEMBLE
    assembled = assemble(hits, subgraph, seeds_expanded=query_type.requires_expansion)

    context = None
    if compose_context:
        progress.stage = Stage.COMPOSE
        context = compose(
            assembled,
            query_type=query_type,
            budget=settings.default_token_budget,
            tokenizer=settings.tokenizer,
            entity_share=settings.entity_share,
        )

    return SearchResult(
        query_type=query_type,
        entities=assembled.entities,
        graph_data=assembled.graph_data,
        relation_directions=assembled.relation_directions,
        hop_distances=assembled.hop_distances,
        context=context,
    )
