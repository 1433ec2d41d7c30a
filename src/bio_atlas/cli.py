"""CLI entrypoint for Bio Atlas."""

from __future__ import annotations

import asyncio
import json

import typer
from loguru import logger

app = typer.Typer(
    name="bio-atlas",
    help="Bio Atlas — hybrid vector + graph retrieval over a biomedical knowledge graph.",
    no_args_is_help=True,
)


@app.command()
def search(
    query: str = typer.Argument(..., help="Free-text question."),
    mode: str | None = typer.Option(
        None, "--mode", "-m", help="Force a strategy: semantic, structural, exact, hybrid (default: classify)."
    ),
    entity_type: list[str] | None = typer.Option(
        None, "--type", "-t", help="Restrict to an entity type: Drug, Disease, ClinicalDisease, Protein (repeatable)."
    ),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Max similarity hits to return."),
    timeout: float | None = typer.Option(None, "--timeout", help="End-to-end search budget in seconds."),
    context: bool = typer.Option(False, "--context", help="Also compose a token-bounded context block."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
) -> None:
    """Search the knowledge graph."""
    asyncio.run(
        _run_search(
            query,
            mode=mode,
            entity_types=entity_type or None,
            limit=limit,
            timeout_s=timeout,
            compose_context=context,
            as_json=as_json,
        )
    )


@app.command()
def health(
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """Check Neo4j, the embedding service and the vector indexes."""
    asyncio.run(_run_health(as_json=as_json))


# ---------------------------------------------------------------------------
# Async helpers
# ---------------------------------------------------------------------------


async def _run_search(
    query: str,
    *,
    mode: str | None,
    entity_types: list[str] | None,
    limit: int | None,
    timeout_s: float | None,
    compose_context: bool,
    as_json: bool,
) -> None:
    """Async implementation of the ``bio-atlas search`` command."""
    from bio_atlas.errors import RetrievalError
    from bio_atlas.graph import GraphClient
    from bio_atlas.search import EmbedClient
    from bio_atlas.search import search as run_search
    from bio_atlas.settings import BioAtlasSettings
    from bio_atlas.telemetry import init_telemetry, shutdown_telemetry

    settings = BioAtlasSettings()
    init_telemetry(settings.observability)
    graph = GraphClient(settings)
    embed = EmbedClient(settings.embeddings)

    try:
        result = await run_search(
            graph,
            embed,
            settings.search,
            query,
            mode=mode,
            entity_types=entity_types,
            limit=limit,
            timeout_s=timeout_s,
            compose_context=compose_context,
        )
    except RetrievalError as exc:
        logger.error("Search failed: {}", exc)
        raise typer.Exit(code=1) from exc
    finally:
        await graph.close()
        shutdown_telemetry()

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, default=str))
        return

    logger.info("Query type: {}", result.query_type)
    if not result.entities:
        logger.info("No results found for '{}'", query)
        return
    for i, hit in enumerate(result.entities, 1):
        logger.info("{}. {} ({}) — score={:.4f}", i, hit.entity.display_name, hit.entity.entity_type, hit.score)
    if result.graph_data.edges:
        logger.info(
            "Graph context: {} entities, {} relationships",
            len(result.graph_data.entities),
            len(result.graph_data.edges),
        )
    if result.context is not None:
        logger.info(
            "Context ({}/{} tokens, confidence {:.2f}):\n{}",
            result.context.total_tokens,
            result.context.budget,
            result.context.confidence,
            result.context.render(),
        )


async def _run_health(*, as_json: bool) -> None:
    """Async implementation of the ``bio-atlas health`` command."""
    from bio_atlas.health import CheckStatus, run_health_checks
    from bio_atlas.settings import BioAtlasSettings

    settings = BioAtlasSettings()
    report = await run_health_checks(settings)

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        for check in report.checks:
            log = logger.info if check.status == CheckStatus.OK else logger.warning
            log("[{}] {}: {}", check.status, check.name, check.message)
            if check.detail:
                log("    {}", check.detail)
            if check.suggestion:
                log("    -> {}", check.suggestion)
        logger.info("Completed in {:.0f}ms", report.elapsed_ms)

    if not report.ok:
        raise typer.Exit(code=1)
