"""Tests for the bio-atlas CLI (search and health commands, mocked backends)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from bio_atlas.cli import app
from bio_atlas.errors import Stage, StoreUnavailableError
from bio_atlas.health import CheckResult, CheckStatus, HealthReport
from bio_atlas.search.models import Entity, QueryType, SearchResult, SimilarityHit, Subgraph

runner = CliRunner()


def _result() -> SearchResult:
    hit = SimilarityHit(Entity("4:x:1", "Drug", "Aspirin", {"indication": "Pain"}), 0.93)
    return SearchResult(query_type=QueryType.SEMANTIC, entities=(hit,), graph_data=Subgraph(entities=(hit.entity,)))


def _patch_search(**kwargs):
    """Patch the clients and search function where ``_run_search`` imports them."""
    return (
        patch("bio_atlas.graph.GraphClient", return_value=AsyncMock()),
        patch("bio_atlas.search.EmbedClient", return_value=AsyncMock()),
        patch("bio_atlas.search.search", new_callable=AsyncMock, **kwargs),
    )


def _health_report(*, ok: bool) -> HealthReport:
    return HealthReport(
        checks=[
            CheckResult(
                name="neo4j",
                status=CheckStatus.OK if ok else CheckStatus.FAIL,
                message="Connected" if ok else "Unreachable",
            )
        ],
        elapsed_ms=12.0,
    )


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


class TestSearchCommand:
    def test_json_output(self):
        p_graph, p_embed, p_search = _patch_search(return_value=_result())
        with p_graph, p_embed, p_search:
            result = runner.invoke(app, ["search", "drugs similar to aspirin", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["query_type"] == "semantic"
        assert data["entities"][0]["name"] == "Aspirin"
        assert data["graph_data"]["entities"][0]["id"] == "4:x:1"

    def test_options_forwarded(self):
        p_graph, p_embed, p_search = _patch_search(return_value=_result())
        with p_graph, p_embed, p_search as mock_search:
            result = runner.invoke(
                app,
                [
                    "search",
                    "aspirin",
                    "--mode",
                    "exact",
                    "--type",
                    "Drug",
                    "--type",
                    "Protein",
                    "--limit",
                    "3",
                    "--timeout",
                    "2.5",
                    "--context",
                    "--json",
                ],
            )
        assert result.exit_code == 0
        kwargs = mock_search.call_args.kwargs
        assert kwargs["mode"] == "exact"
        assert kwargs["entity_types"] == ["Drug", "Protein"]
        assert kwargs["limit"] == 3
        assert kwargs["timeout_s"] == 2.5
        assert kwargs["compose_context"] is True

    def test_retrieval_error_exits_1(self):
        err = StoreUnavailableError("down", stage=Stage.VECTOR_SEARCH)
        p_graph, p_embed, p_search = _patch_search(side_effect=err)
        with p_graph, p_embed, p_search:
            result = runner.invoke(app, ["search", "aspirin"])
        assert result.exit_code == 1

    def test_human_output_exits_0(self):
        p_graph, p_embed, p_search = _patch_search(return_value=_result())
        with p_graph, p_embed, p_search:
            result = runner.invoke(app, ["search", "aspirin"])
        assert result.exit_code == 0


# ---------------------------------------------------------------------------
# health
# ---------------------------------------------------------------------------


class TestHealthCommand:
    def test_healthy_json(self):
        with patch("bio_atlas.health.run_health_checks", new_callable=AsyncMock, return_value=_health_report(ok=True)):
            result = runner.invoke(app, ["health", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["ok"] is True
        assert data["checks"][0]["name"] == "neo4j"

    def test_unhealthy_exits_1(self):
        with patch("bio_atlas.health.run_health_checks", new_callable=AsyncMock, return_value=_health_report(ok=False)):
            result = runner.invoke(app, ["health"])
        assert result.exit_code == 1
