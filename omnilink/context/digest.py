"""Render an ecosystem graph into a digest record and its markdown form.

Structural sections (repos, contracts, shared types, conventions, API
surface) describe the graph that is passed in, usually the pruned one.
Recent history and evolution findings come from the caller's pre-pruning
data so budget pressure never erases them from the summary.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..config import OmniLinkConfig, config_sha
from ..models import (
    ContractStatus,
    DigestRepo,
    EcosystemDigest,
    EcosystemGraph,
    EvolutionSuggestion,
    RepoManifest,
)
from .pruner import estimate_tokens

TEMPLATES_DIR = Path(__file__).with_name("templates")
MAX_SIGNATURE_FIELDS = 8
MAX_ROUTE_SIGNATURES = 10
SHORT_SHA_LENGTH = 7

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)


def format_digest(
    graph: EcosystemGraph,
    config: OmniLinkConfig,
    evolution_opportunities: Sequence[EvolutionSuggestion] = (),
    original_repos: Optional[Sequence[RepoManifest]] = None,
    *,
    now: Optional[datetime] = None,
) -> tuple[EcosystemDigest, str]:
    """Build the digest and markdown for ``graph``.

    ``original_repos`` are the manifests before pruning; commit history and
    the recent-changes summary are read from them. ``evolution_opportunities``
    are rendered exactly as given.
    """
    timestamp = _isoformat(now or datetime.now(UTC))
    history_repos = list(original_repos) if original_repos is not None else list(graph.repos)
    commit_limit = config.context.include_recent_commits
    evolution = list(evolution_opportunities)

    contract_status = build_contract_status(graph)
    markdown = _env.get_template("digest.md.j2").render(
        generated_at=timestamp,
        repos=[_repo_row(repo) for repo in graph.repos],
        status=contract_status,
        shared_types=[
            {
                "concept": lineage.concept,
                "alignment": lineage.alignment,
                "repos": ", ".join(inst.repo for inst in lineage.instances),
                "instances": [
                    {
                        "repo": inst.repo,
                        "field_count": len(inst.type.fields),
                        "file": inst.type.source.file,
                    }
                    for inst in lineage.instances
                ],
            }
            for lineage in graph.shared_types
        ],
        commits=collect_recent_commits(history_repos, commit_limit),
        evolution=evolution,
        conventions=[
            {
                "repo": repo.repo_id,
                "naming": repo.conventions.naming or "none",
                "org": repo.conventions.file_organization or "none",
                "errors": repo.conventions.error_handling or "none",
                "patterns": ", ".join(repo.conventions.patterns) or "none detected",
            }
            for repo in graph.repos
        ],
        type_signatures=_type_signatures(graph),
        routes=_route_signatures(graph)[:MAX_ROUTE_SIGNATURES],
        routes_omitted=max(0, _route_count(graph) - MAX_ROUTE_SIGNATURES),
    )
    markdown = markdown.rstrip() + "\n"

    digest = EcosystemDigest(
        generated_at=timestamp,
        config_sha=config_sha(config),
        repos=[
            DigestRepo(
                name=repo.repo_id,
                language=repo.language,
                branch=repo.git_state.branch,
                uncommitted_count=len(repo.git_state.uncommitted_changes),
            )
            for repo in graph.repos
        ],
        contract_status=contract_status,
        evolution_opportunities=evolution,
        convention_summary=build_convention_summary(graph.repos),
        api_surface_summary=build_api_surface_summary(graph),
        recent_changes_summary=build_recent_changes_summary(history_repos, commit_limit),
        token_count=estimate_tokens(markdown),
    )
    return digest, markdown


def build_contract_status(graph: EcosystemGraph) -> ContractStatus:
    statuses = [bridge.contract.match_status for bridge in graph.bridges]
    return ContractStatus(
        total=len(statuses),
        exact=statuses.count("exact"),
        compatible=statuses.count("compatible"),
        mismatches=list(graph.contract_mismatches),
    )


def build_convention_summary(repos: Sequence[RepoManifest]) -> Dict[str, str]:
    return {
        repo.repo_id: (
            f"naming={repo.conventions.naming}, org={repo.conventions.file_organization}, "
            f"errors={repo.conventions.error_handling}"
        )
        for repo in repos
    }


def build_api_surface_summary(graph: EcosystemGraph) -> str:
    routes = _route_count(graph)
    procedures = sum(len(repo.api_surface.procedures) for repo in graph.repos)
    return f"{routes} routes, {procedures} procedures, {len(graph.bridges)} cross-repo bridges"


def build_recent_changes_summary(repos: Sequence[RepoManifest], limit: int) -> str:
    commits = sum(len(repo.git_state.recent_commits[:limit]) for repo in repos)
    uncommitted = sum(len(repo.git_state.uncommitted_changes) for repo in repos)
    return (
        f"{commits} recent commits, {uncommitted} uncommitted changes "
        f"across {len(repos)} repos"
    )


def collect_recent_commits(repos: Sequence[RepoManifest], limit: int) -> List[Dict[str, str]]:
    """All repos' commits (``limit`` per repo), newest first."""
    rows = [
        (
            _parse_date(commit.date),
            {
                "repo": repo.repo_id,
                "sha": commit.sha[:SHORT_SHA_LENGTH],
                "message": commit.message,
                "author": commit.author,
                "date": commit.date,
            },
        )
        for repo in repos
        for commit in repo.git_state.recent_commits[:limit]
    ]
    rows.sort(key=lambda row: row[0], reverse=True)
    return [row for _, row in rows]


# ------------------------------------------------------------------
# Internal helpers


def _repo_row(repo: RepoManifest) -> Dict[str, str]:
    count = len(repo.git_state.uncommitted_changes)
    changes = "1 uncommitted change" if count == 1 else f"{count} uncommitted changes"
    return {
        "name": repo.repo_id,
        "language": repo.language,
        "branch": repo.git_state.branch,
        "changes": changes,
    }


def _type_signatures(graph: EcosystemGraph) -> List[Dict[str, object]]:
    signatures: List[Dict[str, object]] = []
    for lineage in graph.shared_types:
        for inst in lineage.instances:
            type_def = inst.type
            signatures.append(
                {
                    "name": type_def.name,
                    "repo": inst.repo,
                    "fields": [
                        f"{f.name}{'?' if f.optional else ''}: {f.type}"
                        for f in type_def.fields[:MAX_SIGNATURE_FIELDS]
                    ],
                    "hidden": max(0, len(type_def.fields) - MAX_SIGNATURE_FIELDS),
                    "file": type_def.source.file,
                    "line": type_def.source.line,
                }
            )
    return signatures


def _route_signatures(graph: EcosystemGraph) -> List[Dict[str, object]]:
    return [
        {
            "label": f"{route.method} {route.path}",
            "location": f"{repo.repo_id}/{route.file}:{route.line}",
            "handler": route.handler,
            "input_type": route.input_type,
            "output_type": route.output_type,
        }
        for repo in graph.repos
        for route in repo.api_surface.routes
    ]


def _route_count(graph: EcosystemGraph) -> int:
    return sum(len(repo.api_surface.routes) for repo in graph.repos)


def _parse_date(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _isoformat(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


__all__ = [
    "build_api_surface_summary",
    "build_contract_status",
    "build_convention_summary",
    "build_recent_changes_summary",
    "collect_recent_commits",
    "format_digest",
]
