"""Health check and diagnostics for Bio Atlas infrastructure."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from bio_atlas.graph.client import GraphClient
from bio_atlas.schema import VECTOR_INDEXES
from bio_atlas.search.embeddings import EmbedClient

if TYPE_CHECKING:
    from bio_atlas.settings import BioAtlasSettings, EmbeddingSettings, Neo4jSettings

_CHECK_TIMEOUT = 3.0  # seconds per individual check


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


class CheckStatus(StrEnum):
    OK = "ok"
    WARN = "warn"
    FAIL = "fail"


@dataclass(frozen=True)
class CheckResult:
    """Result of a single health check."""

    name: str
    status: CheckStatus
    message: str
    detail: str = ""
    suggestion: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": str(self.status),
            "message": self.message,
            "detail": self.detail,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True)
class HealthReport:
    """Aggregated results from all health checks."""

    checks: list[CheckResult]
    elapsed_ms: float

    @property
    def ok(self) -> bool:
        """True when no check has FAIL status (WARN is treated as passing)."""
        return all(c.status != CheckStatus.FAIL for c in self.checks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "checks": [c.to_dict() for c in self.checks],
        }


# ---------------------------------------------------------------------------
# Individual check functions
# ---------------------------------------------------------------------------


async def check_neo4j(graph: GraphClient, neo_settings: Neo4jSettings) -> CheckResult:
    """Verify Neo4j connectivity."""
    name = "neo4j"
    addr = neo_settings.uri
    try:
        ok = await asyncio.wait_for(graph.ping(), timeout=_CHECK_TIMEOUT)
        if ok:
            return CheckResult(name, CheckStatus.OK, f"Connected ({addr})")
        return CheckResult(name, CheckStatus.FAIL, f"Ping failed ({addr})", suggestion="Check that Neo4j is running.")
    except Exception as exc:
        return CheckResult(
            name,
            CheckStatus.FAIL,
            f"Unreachable ({addr})",
            detail=str(exc),
            suggestion="Check BIOATLAS_NEO4J__URI and credentials.",
        )


async def check_embeddings(embed: EmbedClient, embed_settings: EmbeddingSettings) -> CheckResult:
    """Verify the embedding service is reachable."""
    name = "embeddings"
    info = f"{embed_settings.model} @ {embed_settings.base_url or 'provider default'}"
    try:
        ok = await asyncio.wait_for(embed.health_check(), timeout=_CHECK_TIMEOUT)
        if ok:
            return CheckResult(name, CheckStatus.OK, f"Responding ({info})")
        return CheckResult(
            name,
            CheckStatus.FAIL,
            f"Unreachable ({info})",
            suggestion="Check BIOATLAS_EMBEDDINGS__API_KEY and the embedding endpoint.",
        )
    except Exception as exc:
        return CheckResult(
            name,
            CheckStatus.FAIL,
            f"Unreachable ({info})",
            detail=str(exc),
            suggestion="Check BIOATLAS_EMBEDDINGS__API_KEY and the embedding endpoint.",
        )


async def check_vector_indexes(graph: GraphClient) -> CheckResult:
    """Verify that every entity type's vector index exists and is online."""
    name = "vector_indexes"
    try:
        rows = await asyncio.wait_for(graph.list_vector_indexes(), timeout=_CHECK_TIMEOUT)
    except Exception as exc:
        return CheckResult(name, CheckStatus.WARN, "Cannot list vector indexes", detail=str(exc))

    states = {row.get("name"): row.get("state") for row in rows}
    expected = [spec.name for spec in VECTOR_INDEXES.values()]
    missing = [n for n in expected if n not in states]
    offline = [n for n in expected if n in states and states[n] != "ONLINE"]

    if missing:
        return CheckResult(
            name,
            CheckStatus.WARN,
            f"Missing: {', '.join(missing)}",
            detail="Vector search over these entity types will fail.",
            suggestion="Create the missing vector indexes before searching.",
        )
    if offline:
        return CheckResult(
            name,
            CheckStatus.WARN,
            f"Not online: {', '.join(offline)}",
            detail="Indexes may still be populating.",
        )
    return CheckResult(name, CheckStatus.OK, f"{len(expected)} vector indexes online")


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

_SKIPPED_DETAIL = "Skipped — Neo4j unreachable"


async def run_health_checks(
    settings: BioAtlasSettings,
    *,
    graph: GraphClient | None = None,
    embed: EmbedClient | None = None,
) -> HealthReport:
    """Run all health checks and return an aggregated report.

    Neo4j and the embedding service are checked concurrently.  The vector
    index check only runs if Neo4j is reachable.  When *graph* is ``None`` a
    temporary client is created and closed.
    """
    t0 = time.monotonic()

    own_graph = graph is None
    if graph is None:
        graph = GraphClient(settings)
    if embed is None:
        embed = EmbedClient(settings.embeddings)

    try:
        neo_res, embed_res = await asyncio.gather(
            check_neo4j(graph, settings.neo4j),
            check_embeddings(embed, settings.embeddings),
        )
        results = [neo_res, embed_res]

        if neo_res.status == CheckStatus.FAIL:
            results.append(CheckResult("vector_indexes", CheckStatus.FAIL, _SKIPPED_DETAIL))
        else:
            results.append(await check_vector_indexes(graph))
    finally:
        if own_graph:
            await graph.close()

    elapsed = (time.monotonic() - t0) * 1000
    return HealthReport(checks=results, elapsed_ms=elapsed)
