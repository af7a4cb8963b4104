"""Ecosystem graph assembly from repo manifests."""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from ..logging import get_logger
from ..models import (
    ApiBridge,
    EcosystemGraph,
    ImpactPath,
    Mismatch,
    MismatchSide,
    RepoManifest,
)
from .contracts import compare_types, find_type, make_empty_type, map_api_contracts
from .type_flow import map_type_flows

logger = get_logger("grapher")


def build_ecosystem_graph(
    manifests: Sequence[RepoManifest],
    impact_paths: Iterable[ImpactPath] = (),
) -> EcosystemGraph:
    """Assemble bridges, shared types and contract mismatches for ``manifests``.

    Impact paths come from an external analyzer and are carried through
    untouched.
    """
    repos = list(manifests)
    bridges = map_api_contracts(repos)
    shared_types = map_type_flows(repos)
    mismatches = find_contract_mismatches(bridges, repos)
    logger.info(
        "Built ecosystem graph: %d repos, %d bridges, %d shared types, %d mismatches",
        len(repos),
        len(bridges),
        len(shared_types),
        len(mismatches),
    )
    return EcosystemGraph(
        repos=repos,
        bridges=bridges,
        shared_types=shared_types,
        contract_mismatches=mismatches,
        impact_paths=list(impact_paths),
    )


def find_contract_mismatches(
    bridges: Sequence[ApiBridge], manifests: Sequence[RepoManifest]
) -> List[Mismatch]:
    """Describe field-level disagreements on every non-exact bridge.

    Consumer fields the provider lacks are breaking; provider fields a
    mismatched consumer ignores are informational. Bridges whose consumer
    has no type of that name produce nothing.
    """
    by_repo: Dict[str, RepoManifest] = {manifest.repo_id: manifest for manifest in manifests}
    mismatches: List[Mismatch] = []

    for bridge in bridges:
        if bridge.contract.match_status == "exact":
            continue
        consumer_manifest = by_repo.get(bridge.consumer.repo)
        if consumer_manifest is None:
            continue
        provider_type = bridge.contract.output_type
        consumer_type = find_type(consumer_manifest, provider_type.name)
        if consumer_type is None:
            continue

        provider_fields = provider_type.field_names()
        consumer_fields = consumer_type.field_names()

        for type_field in consumer_type.fields:
            if type_field.name in provider_fields:
                continue
            mismatches.append(
                Mismatch(
                    kind="extra-field",
                    description=(
                        f"Consumer {bridge.consumer.repo} expects field '{type_field.name}' "
                        f"on {provider_type.name} which provider {bridge.provider.repo} "
                        "does not provide"
                    ),
                    provider=MismatchSide(
                        repo=bridge.provider.repo,
                        file=provider_type.source.file,
                        line=provider_type.source.line,
                        field=type_field.name,
                    ),
                    consumer=MismatchSide(
                        repo=bridge.consumer.repo,
                        file=consumer_type.source.file,
                        line=consumer_type.source.line,
                        field=type_field.name,
                    ),
                    severity="breaking",
                )
            )

        if bridge.contract.match_status != "mismatch":
            continue
        for type_field in provider_type.fields:
            if type_field.name in consumer_fields:
                continue
            mismatches.append(
                Mismatch(
                    kind="missing-field",
                    description=(
                        f"Consumer {bridge.consumer.repo} does not use field "
                        f"'{type_field.name}' from {provider_type.name} provided by "
                        f"{bridge.provider.repo}"
                    ),
                    provider=MismatchSide(
                        repo=bridge.provider.repo,
                        file=provider_type.source.file,
                        line=provider_type.source.line,
                        field=type_field.name,
                    ),
                    consumer=MismatchSide(
                        repo=bridge.consumer.repo,
                        file=consumer_type.source.file,
                        line=consumer_type.source.line,
                    ),
                    severity="info",
                )
            )

    return mismatches


__all__ = [
    "build_ecosystem_graph",
    "compare_types",
    "find_contract_mismatches",
    "find_type",
    "make_empty_type",
    "map_api_contracts",
    "map_type_flows",
]
