"""Cross-repo API contract mapping.

Consumer references are detected by raw substring containment on export
names and signatures. Short or common route paths and procedure names (a
procedure called ``id``, say) can therefore yield false-positive bridges;
matching is textual only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from ..logging import get_logger
from ..models import (
    ApiBridge,
    BridgeConsumer,
    BridgeContract,
    BridgeProvider,
    ProcedureDef,
    RepoManifest,
    RouteDefinition,
    SourceLocation,
    TypeDef,
)

UNKNOWN_TYPE = "unknown"

logger = get_logger("grapher.contracts")


@dataclass(frozen=True)
class ProviderEndpoint:
    """A route or procedure offered by one repo."""

    manifest: RepoManifest
    kind: str
    route: Optional[RouteDefinition] = None
    procedure: Optional[ProcedureDef] = None

    def __post_init__(self) -> None:
        if (self.route is None) == (self.procedure is None):
            raise ValueError("A provider endpoint needs exactly one route or procedure")

    @property
    def repo_id(self) -> str:
        return self.manifest.repo_id

    @property
    def label(self) -> str:
        if self.route is not None:
            return f"{self.route.method} {self.route.path}"
        procedure = self._require_procedure()
        return f"{procedure.kind} {procedure.name}"

    @property
    def handler(self) -> str:
        if self.route is not None:
            return self.route.handler
        return self._require_procedure().name

    @property
    def input_type(self) -> Optional[str]:
        endpoint = self.route if self.route is not None else self.procedure
        return endpoint.input_type if endpoint is not None else None

    @property
    def output_type(self) -> Optional[str]:
        endpoint = self.route if self.route is not None else self.procedure
        return endpoint.output_type if endpoint is not None else None

    def _require_procedure(self) -> ProcedureDef:
        if self.procedure is None:
            raise ValueError(f"{self.kind} endpoint in {self.repo_id} has no procedure")
        return self.procedure


@dataclass(frozen=True)
class ConsumerMatch:
    file: str
    line: int


def compare_types(provider_type: TypeDef, consumer_type: TypeDef) -> str:
    """Classify how a consumer's view of a type lines up with the provider's.

    ``mismatch`` when the consumer expects a field the provider lacks,
    ``exact`` when both carry the same field names, ``compatible`` when the
    consumer reads a strict subset.
    """
    provider_fields = provider_type.field_names()
    consumer_fields = consumer_type.field_names()
    if not consumer_fields <= provider_fields:
        return "mismatch"
    if len(consumer_fields) == len(provider_fields):
        return "exact"
    return "compatible"


def find_type(manifest: RepoManifest, type_name: str) -> Optional[TypeDef]:
    """Look up ``type_name`` in raw types first, then in schemas."""
    for type_def in manifest.type_registry.types:
        if type_def.name == type_name:
            return type_def
    for schema in manifest.type_registry.schemas:
        if schema.name == type_name:
            return schema.to_type_def()
    return None


def make_empty_type(name: str, repo: str) -> TypeDef:
    """Placeholder for a type the registry could not resolve."""
    return TypeDef(name=name, fields=[], source=SourceLocation(repo=repo, file="unknown", line=0))


def collect_providers(manifests: Sequence[RepoManifest]) -> List[ProviderEndpoint]:
    providers: List[ProviderEndpoint] = []
    for manifest in manifests:
        for route in manifest.api_surface.routes:
            providers.append(ProviderEndpoint(manifest=manifest, kind="route", route=route))
        for procedure in manifest.api_surface.procedures:
            providers.append(
                ProviderEndpoint(manifest=manifest, kind="procedure", procedure=procedure)
            )
    return providers


def find_consumer_references(
    consumer: RepoManifest, provider: ProviderEndpoint
) -> Iterator[ConsumerMatch]:
    """Yield consumer exports whose name or signature mentions the endpoint."""
    if provider.route is not None:
        path = provider.route.path
        method_path = f"{provider.route.method} {provider.route.path}"
        for export in consumer.api_surface.exports:
            if path in export.signature or method_path in export.signature or path in export.name:
                yield ConsumerMatch(file=export.file, line=export.line)
    elif provider.procedure is not None:
        name = provider.procedure.name
        for export in consumer.api_surface.exports:
            if name in export.signature or name in export.name:
                yield ConsumerMatch(file=export.file, line=export.line)


def map_api_contracts(manifests: Sequence[RepoManifest]) -> List[ApiBridge]:
    """Detect every cross-repo endpoint reference and classify its contract.

    Order is providers (by manifest, routes before procedures), then consumer
    manifests in configuration order, then matching exports. Each textual
    match yields its own bridge.
    """
    providers = collect_providers(manifests)
    if not providers:
        return []

    bridges: List[ApiBridge] = []
    for provider in providers:
        output_name = provider.output_type
        provider_output = find_type(provider.manifest, output_name) if output_name else None
        input_type = _resolve_input_type(provider)

        for consumer in manifests:
            if consumer.repo_id == provider.repo_id:
                continue
            consumer_output = find_type(consumer, output_name) if output_name else None
            if provider_output is not None and consumer_output is not None:
                match_status = compare_types(provider_output, consumer_output)
            else:
                # Unresolved on either side stays optimistic.
                match_status = "compatible"

            for match in find_consumer_references(consumer, provider):
                bridges.append(
                    ApiBridge(
                        consumer=BridgeConsumer(
                            repo=consumer.repo_id, file=match.file, line=match.line
                        ),
                        provider=BridgeProvider(
                            repo=provider.repo_id, route=provider.label, handler=provider.handler
                        ),
                        contract=BridgeContract(
                            input_type=input_type,
                            output_type=provider_output
                            or make_empty_type(output_name or UNKNOWN_TYPE, provider.repo_id),
                            match_status=match_status,
                        ),
                    )
                )

    logger.debug("Mapped %d bridges across %d providers", len(bridges), len(providers))
    return bridges


def _resolve_input_type(provider: ProviderEndpoint) -> TypeDef:
    name = provider.input_type
    if name:
        found = find_type(provider.manifest, name)
        if found is not None:
            return found
    return make_empty_type(name or UNKNOWN_TYPE, provider.repo_id)


__all__ = [
    "ConsumerMatch",
    "ProviderEndpoint",
    "collect_providers",
    "compare_types",
    "find_consumer_references",
    "find_type",
    "make_empty_type",
    "map_api_contracts",
]
