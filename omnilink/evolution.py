"""Default evolution analyzer: gap findings turned into ranked suggestions.

``build_context`` accepts any callable with the signature of
:func:`analyze_evolution`; this one covers incomplete CRUD resources,
orphaned schemas and endpoints behind breaking contract mismatches.
"""

from __future__ import annotations

import hashlib
from typing import Callable, Dict, List, Sequence

from .config import OmniLinkConfig
from .models import (
    EcosystemGraph,
    Evidence,
    EvolutionSuggestion,
    RepoManifest,
    RouteDefinition,
)

EvolutionAnalyzer = Callable[[EcosystemGraph, OmniLinkConfig], List[EvolutionSuggestion]]

CRUD_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
_IMPACT_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def analyze_evolution(graph: EcosystemGraph, config: OmniLinkConfig) -> List[EvolutionSuggestion]:
    """Suggest improvements for ``graph``, filtered and capped by ``config.evolution``."""
    if not graph.repos:
        return []

    suggestions: List[EvolutionSuggestion] = []
    for manifest in graph.repos:
        suggestions.extend(detect_incomplete_crud(manifest))
        suggestions.extend(detect_orphaned_schemas(manifest))
    suggestions.extend(detect_breaking_endpoints(graph))

    # sorted() is stable, so ties keep discovery order.
    suggestions = sorted(suggestions, key=lambda s: _IMPACT_RANK.get(s.estimated_impact, 4))
    allowed = set(config.evolution.categories)
    suggestions = [s for s in suggestions if s.category in allowed]
    return suggestions[: config.evolution.max_suggestions_per_session]


def normalize_resource_path(path: str) -> str:
    """Strip path parameters: ``/api/users/:id`` -> ``/api/users``."""
    segments = [seg for seg in path.split("/") if not seg.startswith((":", "{"))]
    return "/".join(segments).rstrip("/") or "/"


def detect_incomplete_crud(manifest: RepoManifest) -> List[EvolutionSuggestion]:
    resources: Dict[str, List[RouteDefinition]] = {}
    for route in manifest.api_surface.routes:
        if route.method.upper() not in CRUD_METHODS:
            continue
        resources.setdefault(normalize_resource_path(route.path), []).append(route)

    suggestions: List[EvolutionSuggestion] = []
    for resource, routes in resources.items():
        methods = {route.method.upper() for route in routes}
        if len(methods) < 2:
            continue
        missing: List[str] = []
        if "GET" not in methods:
            missing.append("GET")
        if "POST" not in methods:
            missing.append("POST")
        if "PUT" not in methods and "PATCH" not in methods:
            missing.append("PUT/PATCH")
        if "DELETE" not in methods:
            missing.append("DELETE")
        if not missing:
            continue
        first = routes[0]
        finding = (
            f"Resource '{resource}' has {', '.join(sorted(methods))} "
            f"but is missing: {', '.join(missing)}"
        )
        suggestions.append(
            _suggestion(
                kind="incomplete-crud",
                category="feature",
                title=f"Complete CRUD operations for {resource} in {manifest.repo_id}",
                description=finding,
                evidence=[Evidence(manifest.repo_id, first.file, first.line, finding)],
                effort="medium",
                impact="medium",
                repos=[manifest.repo_id],
            )
        )
    return suggestions


def detect_orphaned_schemas(manifest: RepoManifest) -> List[EvolutionSuggestion]:
    referenced = set()
    for endpoint in [*manifest.api_surface.routes, *manifest.api_surface.procedures]:
        if endpoint.input_type:
            referenced.add(endpoint.input_type)
        if endpoint.output_type:
            referenced.add(endpoint.output_type)

    suggestions: List[EvolutionSuggestion] = []
    for schema in manifest.type_registry.schemas:
        if schema.name in referenced:
            continue
        finding = (
            f"Schema '{schema.name}' ({schema.kind}) is not referenced by any route or procedure"
        )
        suggestions.append(
            _suggestion(
                kind="orphaned-schema",
                category="feature",
                title=f"Wire or remove orphaned schema {schema.name} in {manifest.repo_id}",
                description=finding,
                evidence=[
                    Evidence(manifest.repo_id, schema.source.file, schema.source.line, finding)
                ],
                effort="small",
                impact="low",
                repos=[manifest.repo_id],
            )
        )
    return suggestions


def detect_breaking_endpoints(graph: EcosystemGraph) -> List[EvolutionSuggestion]:
    """One suggestion per provider endpoint with a breaking consumer mismatch."""
    breaking = {
        (m.provider.repo, m.consumer.repo)
        for m in graph.contract_mismatches
        if m.severity == "breaking"
    }
    seen: Dict[str, EvolutionSuggestion] = {}
    for bridge in graph.bridges:
        if bridge.contract.match_status != "mismatch":
            continue
        if (bridge.provider.repo, bridge.consumer.repo) not in breaking:
            continue
        key = f"{bridge.provider.repo}:{bridge.provider.route}"
        finding = (
            f"{bridge.consumer.repo} reads fields of {bridge.contract.output_type.name} "
            f"that {bridge.provider.route} does not return"
        )
        evidence = Evidence(
            bridge.consumer.repo, bridge.consumer.file, bridge.consumer.line, finding
        )
        existing = seen.get(key)
        if existing is not None:
            existing.evidence.append(evidence)
            if bridge.consumer.repo not in existing.affected_repos:
                existing.affected_repos.append(bridge.consumer.repo)
            continue
        seen[key] = _suggestion(
            kind="breaking-contract",
            category="scale",
            title=f"Version {bridge.provider.route} in {bridge.provider.repo}",
            description=(
                f"Consumers disagree with the {bridge.contract.output_type.name} contract; "
                "add a versioned endpoint or align the consumer types before shipping changes."
            ),
            evidence=[evidence],
            effort="medium",
            impact="high",
            repos=[bridge.provider.repo, bridge.consumer.repo],
        )
    return list(seen.values())


def _suggestion(
    *,
    kind: str,
    category: str,
    title: str,
    description: str,
    evidence: List[Evidence],
    effort: str,
    impact: str,
    repos: Sequence[str],
) -> EvolutionSuggestion:
    digest = hashlib.sha1(f"{kind}:{title}".encode("utf-8")).hexdigest()[:10]
    return EvolutionSuggestion(
        id=f"{kind}-{digest}",
        category=category,
        title=title,
        description=description,
        evidence=evidence,
        estimated_effort=effort,
        estimated_impact=impact,
        affected_repos=list(repos),
    )


__all__ = [
    "EvolutionAnalyzer",
    "analyze_evolution",
    "detect_breaking_endpoints",
    "detect_incomplete_crud",
    "detect_orphaned_schemas",
    "normalize_resource_path",
]
