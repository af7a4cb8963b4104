"""Default evolution analyzer tests."""

from __future__ import annotations

from omnilink.evolution import (
    analyze_evolution,
    detect_breaking_endpoints,
    detect_incomplete_crud,
    detect_orphaned_schemas,
    normalize_resource_path,
)
from omnilink.grapher import build_ecosystem_graph
from omnilink.models import EcosystemGraph
from tests._fixtures.manifests import (
    make_config,
    make_manifest,
    make_route,
    make_schema,
    users_scenario,
)


def test_normalize_resource_path_drops_parameters() -> None:
    assert normalize_resource_path("/api/users/:id") == "/api/users"
    assert normalize_resource_path("/api/users/{userId}/") == "/api/users"
    assert normalize_resource_path("/") == "/"


def test_incomplete_crud_lists_missing_methods() -> None:
    manifest = make_manifest(
        "backend",
        routes=[
            make_route("GET", "/api/users"),
            make_route("POST", "/api/users"),
            make_route("GET", "/api/users/:id", line=20),
            make_route("GET", "/health"),
        ],
    )

    [suggestion] = detect_incomplete_crud(manifest)

    assert suggestion.category == "feature"
    assert suggestion.title == "Complete CRUD operations for /api/users in backend"
    assert suggestion.description.endswith("missing: PUT/PATCH, DELETE")
    assert suggestion.id.startswith("incomplete-crud-")
    assert suggestion.evidence[0].line == 10


def test_full_crud_resource_is_not_reported() -> None:
    manifest = make_manifest(
        "backend",
        routes=[
            make_route(method, "/api/users/:id" if method != "POST" else "/api/users")
            for method in ("GET", "POST", "PATCH", "DELETE")
        ],
    )

    assert detect_incomplete_crud(manifest) == []


def test_orphaned_schema_is_reported() -> None:
    manifest = make_manifest(
        "backend",
        routes=[make_route("POST", "/api/users", input_type="CreateUser")],
        schemas=[make_schema("CreateUser", ["email"]), make_schema("LegacyUser", ["id"])],
    )

    [suggestion] = detect_orphaned_schemas(manifest)

    assert "LegacyUser" in suggestion.title
    assert suggestion.estimated_impact == "low"


def test_breaking_mismatch_suggests_versioning() -> None:
    graph = build_ecosystem_graph(users_scenario(["id", "email", "phone"]))

    [suggestion] = detect_breaking_endpoints(graph)

    assert suggestion.category == "scale"
    assert suggestion.title == "Version POST /api/users in backend"
    assert suggestion.affected_repos == ["backend", "ios-app"]
    assert suggestion.estimated_impact == "high"


def test_analysis_ranks_filters_and_caps() -> None:
    manifests = users_scenario(["id", "email", "phone"])
    manifests[0].type_registry.schemas.append(make_schema("Orphan", ["x"]))
    graph = build_ecosystem_graph(manifests)

    ranked = analyze_evolution(graph, make_config())
    assert [s.category for s in ranked][0] == "scale"
    assert [s.estimated_impact for s in ranked] == ["high", "low"]

    only_features = analyze_evolution(graph, make_config(categories=["feature"]))
    assert [s.category for s in only_features] == ["feature"]

    capped = analyze_evolution(graph, make_config(max_suggestions=1))
    assert len(capped) == 1
    assert capped[0].category == "scale"


def test_empty_graph_has_no_suggestions() -> None:
    assert analyze_evolution(EcosystemGraph(), make_config()) == []
