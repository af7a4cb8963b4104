"""Context building tests: evolution, pruning and rendering together."""

from __future__ import annotations

from typing import List

from omnilink.config import OmniLinkConfig
from omnilink.context import build_context
from omnilink.evolution import analyze_evolution
from omnilink.grapher import build_ecosystem_graph
from omnilink.models import EcosystemGraph, EvolutionSuggestion
from tests._fixtures.manifests import (
    make_commit,
    make_config,
    make_manifest,
    make_route,
    make_type,
)


def _three_repo_graph() -> EcosystemGraph:
    backend = make_manifest(
        "backend",
        types=[make_type("User", ["id", "email"])],
        commits=[make_commit("b000001", "Backend change", "2024-05-01T00:00:00Z")],
    )
    web = make_manifest(
        "web",
        types=[make_type("User", ["id", "email"])],
        commits=[make_commit("w000001", "Web change", "2024-05-02T00:00:00Z")],
    )
    mobile = make_manifest(
        "mobile",
        routes=[
            make_route("GET", "/api/cart", handler="getCart"),
            make_route("POST", "/api/cart", handler="addToCart"),
        ],
        commits=[make_commit("m000001", "Add cart endpoints", "2024-05-03T00:00:00Z")],
    )
    return build_ecosystem_graph([backend, web, mobile])


def test_evolution_survives_pruning_of_its_repo() -> None:
    graph = _three_repo_graph()
    config = make_config(("backend", "web", "mobile"), token_budget=1)
    expected = analyze_evolution(graph, config)
    assert [s.affected_repos for s in expected] == [["mobile"]]

    result = build_context(graph, config)

    assert "repo:mobile" in result.pruned.dropped_items
    assert [repo.name for repo in result.digest.repos] == ["backend"]
    assert result.digest.evolution_opportunities == expected
    assert result.evolution == expected
    assert "Complete CRUD operations for /api/cart in mobile" in result.markdown
    # History comes from the unpruned manifests.
    assert "Add cart endpoints" in result.markdown
    assert "Web change" in result.markdown


def test_analyzer_sees_the_full_graph() -> None:
    graph = _three_repo_graph()
    config = make_config(("backend", "web", "mobile"), token_budget=1)
    seen: List[List[str]] = []

    def analyzer(full: EcosystemGraph, _config: OmniLinkConfig) -> List[EvolutionSuggestion]:
        seen.append([repo.repo_id for repo in full.repos])
        return []

    result = build_context(graph, config, analyzer)

    assert seen == [["backend", "web", "mobile"]]
    assert "No evolution suggestions at this time." in result.markdown
    assert len(graph.repos) == 3


def test_generous_budget_keeps_everything() -> None:
    graph = _three_repo_graph()

    result = build_context(graph, make_config(("backend", "web", "mobile")))

    assert result.pruned.dropped_items == []
    assert [repo.name for repo in result.digest.repos] == ["backend", "web", "mobile"]
    assert result.digest.token_count > 0
