"""Priority-ranked trimming of the ecosystem graph to a token budget."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
import json
import math
from typing import Iterator, List, Sequence, Tuple

from ..config import PRIORITY_POLICIES
from ..logging import get_logger
from ..models import (
    ApiBridge,
    CommitSummary,
    EcosystemGraph,
    ImpactPath,
    Mismatch,
    RepoManifest,
    RouteDefinition,
    TypeDef,
    TypeLineage,
)

CHARS_PER_TOKEN = 4

logger = get_logger("context.pruner")


@dataclass
class PrunedContext:
    """A reduced graph and the token count it actually reached."""

    graph: EcosystemGraph
    dropped_items: List[str] = field(default_factory=list)
    token_estimate: int = 0


def estimate_tokens(text: str) -> int:
    """Approximate token count from character length (~4 chars per token)."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def prune_to_token_budget(
    graph: EcosystemGraph,
    budget: int,
    prioritize: str = "changed-files-first",
) -> PrunedContext:
    """Drop the lowest-priority content until the graph fits ``budget``.

    Works on a deep copy; the input graph is never touched. Removal runs
    through a fixed sequence: commits, conventions, shared types, per-repo
    types, bridges, impact paths, routes, then whole repos. Contract
    mismatches and the last remaining repo are never removed, so the
    returned estimate can still exceed ``budget``; it is reported as is.
    """
    if prioritize not in PRIORITY_POLICIES:
        logger.warning("Unknown priority policy %r; using changed-files-first", prioritize)
        prioritize = "changed-files-first"

    pruned = copy.deepcopy(graph)
    dropped: List[str] = []
    total = compute_total_tokens(pruned)

    if total > budget:
        for label, saved in _removals(pruned, prioritize):
            total -= saved
            dropped.append(label)
            if total <= budget:
                break

    achieved = compute_total_tokens(pruned)
    if dropped:
        logger.debug(
            "Pruned %d items to reach %d tokens (budget %d)", len(dropped), achieved, budget
        )
    if achieved > budget:
        logger.info("Graph still needs %d tokens after pruning (budget %d)", achieved, budget)
    return PrunedContext(graph=pruned, dropped_items=dropped, token_estimate=achieved)


def drop_order(repos: Sequence[RepoManifest], prioritize: str) -> List[RepoManifest]:
    """Repos in the order their content is given up.

    Later configured repos go first. Under changed-files-first, repos without
    uncommitted changes go before any repo that has some.
    """
    ordered = list(reversed(repos))
    if prioritize == "changed-files-first":
        ordered.sort(key=lambda repo: bool(repo.git_state.uncommitted_changes))
    return ordered


def compute_total_tokens(graph: EcosystemGraph) -> int:
    total = sum(estimate_tokens(serialize_mismatch(m)) for m in graph.contract_mismatches)
    total += sum(estimate_tokens(serialize_impact_path(p)) for p in graph.impact_paths)
    total += sum(estimate_tokens(serialize_bridge(b)) for b in graph.bridges)
    total += sum(estimate_tokens(serialize_type_lineage(t)) for t in graph.shared_types)
    total += sum(repo_tokens(repo) for repo in graph.repos)
    return total


def repo_tokens(repo: RepoManifest) -> int:
    total = sum(estimate_tokens(serialize_commit(c)) for c in repo.git_state.recent_commits)
    total += estimate_tokens(serialize_conventions(repo))
    total += sum(estimate_tokens(serialize_type_def(t)) for t in repo.type_registry.types)
    total += sum(estimate_tokens(serialize_route(r)) for r in repo.api_surface.routes)
    return total


# --- Serialisation used for estimates --------------------------------------


def serialize_commit(commit: CommitSummary) -> str:
    return (
        f"{commit.sha} {commit.message} {commit.author} {commit.date} "
        f"{','.join(commit.files_changed)}"
    )


def serialize_conventions(repo: RepoManifest) -> str:
    c = repo.conventions
    return (
        f"{c.naming} {c.file_organization} {c.error_handling} "
        f"{','.join(c.patterns)} {c.testing_patterns}"
    )


def serialize_type_def(type_def: TypeDef) -> str:
    return f"{type_def.name} " + " ".join(f"{f.name}:{f.type}" for f in type_def.fields)


def serialize_type_lineage(lineage: TypeLineage) -> str:
    instances = " ".join(
        f"{inst.repo}:{inst.type.name}:{len(inst.type.fields)}fields" for inst in lineage.instances
    )
    return f"{lineage.concept} {lineage.alignment} {instances}"


def serialize_bridge(bridge: ApiBridge) -> str:
    return (
        f"{bridge.provider.route} {bridge.provider.handler} "
        f"{bridge.consumer.repo}:{bridge.consumer.file} {bridge.contract.match_status} "
        f"{serialize_type_def(bridge.contract.input_type)} "
        f"{serialize_type_def(bridge.contract.output_type)}"
    )


def serialize_impact_path(impact: ImpactPath) -> str:
    affected = ", ".join(f"{a.repo}:{a.file}:{a.reason}" for a in impact.affected)
    trigger = impact.trigger
    return f"{trigger.repo}:{trigger.file}:{trigger.change} -> {affected}"


def serialize_mismatch(mismatch: Mismatch) -> str:
    return f"{mismatch.kind} {mismatch.severity} {mismatch.description}"


def serialize_route(route: RouteDefinition) -> str:
    return json.dumps(route.to_dict(), sort_keys=True)


# ------------------------------------------------------------------
# Internal helpers


def _removals(graph: EcosystemGraph, prioritize: str) -> Iterator[Tuple[str, int]]:
    """Remove one item per step, yielding its label and the tokens it saved.

    The sequence depends only on the graph and the policy, never on the
    budget, so a larger budget always stops on a prefix of it.
    """
    repos = drop_order(graph.repos, prioritize)

    for repo in repos:
        commits = repo.git_state.recent_commits
        while commits:
            removed = commits.pop()
            yield f"commit:{repo.repo_id}:{removed.sha}", estimate_tokens(serialize_commit(removed))

    for repo in repos:
        before = estimate_tokens(serialize_conventions(repo))
        conventions = repo.conventions
        if not (
            conventions.patterns
            or conventions.testing_patterns
            or conventions.error_handling
            or conventions.file_organization
        ):
            continue
        conventions.patterns = []
        conventions.testing_patterns = ""
        conventions.error_handling = ""
        conventions.file_organization = ""
        yield f"conventions:{repo.repo_id}", before - estimate_tokens(serialize_conventions(repo))

    if prioritize == "changed-files-first":
        yield from _drop_shared_types(graph)

    for repo in repos:
        types = repo.type_registry.types
        while types:
            removed_type = types.pop()
            yield (
                f"type:{repo.repo_id}:{removed_type.name}",
                estimate_tokens(serialize_type_def(removed_type)),
            )

    while graph.bridges:
        bridge = graph.bridges.pop()
        yield f"bridge:{bridge.provider.route}", estimate_tokens(serialize_bridge(bridge))

    if prioritize == "api-surface-first":
        yield from _drop_shared_types(graph)

    while graph.impact_paths:
        impact = graph.impact_paths.pop()
        yield f"impact:{impact.trigger.file}", estimate_tokens(serialize_impact_path(impact))

    for repo in repos:
        routes = repo.api_surface.routes
        while routes:
            route = routes.pop()
            yield f"route:{repo.repo_id}:{route.path}", estimate_tokens(serialize_route(route))

    for repo in repos[:-1]:
        saved = repo_tokens(repo)
        graph.repos[:] = [kept for kept in graph.repos if kept is not repo]
        yield f"repo:{repo.repo_id}", saved


def _drop_shared_types(graph: EcosystemGraph) -> Iterator[Tuple[str, int]]:
    while graph.shared_types:
        lineage = graph.shared_types.pop()
        yield f"shared-type:{lineage.concept}", estimate_tokens(serialize_type_lineage(lineage))


__all__ = [
    "PrunedContext",
    "compute_total_tokens",
    "drop_order",
    "estimate_tokens",
    "prune_to_token_budget",
]
