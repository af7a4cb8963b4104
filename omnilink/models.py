"""Core data models shared across omnilink components.

Records mirror the scanner's manifest JSON. ``to_dict`` emits camelCase keys
and every ``from_dict`` accepts that same shape, tolerating missing optional
keys so partially populated manifests still load.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Dict, List, Mapping, Optional

MATCH_STATUSES = ("exact", "compatible", "mismatch")
SEVERITIES = ("breaking", "warning", "info")


class ManifestError(ValueError):
    """Raised when manifest data cannot be turned into model objects."""


def to_dict(value: Any) -> Any:
    """Serialise a model (or nested containers of models) to JSON-ready data."""
    if is_dataclass(value) and not isinstance(value, type):
        return {
            f.metadata.get("key", _camel(f.name)): to_dict(getattr(value, f.name))
            for f in fields(value)
        }
    if isinstance(value, (list, tuple)):
        return [to_dict(item) for item in value]
    if isinstance(value, dict):
        return {key: to_dict(item) for key, item in value.items()}
    return value


class _Serialisable:
    def to_dict(self) -> Dict[str, Any]:
        return to_dict(self)


@dataclass
class SourceLocation(_Serialisable):
    """Where a type was declared."""

    repo: str
    file: str
    line: int

    @classmethod
    def from_dict(cls, payload: object) -> "SourceLocation":
        data = _as_mapping(payload)
        return cls(
            repo=_as_str(data.get("repo")),
            file=_as_str(data.get("file")),
            line=_as_int(data.get("line")),
        )


@dataclass
class TypeField(_Serialisable):
    name: str
    type: str
    optional: bool = False

    @classmethod
    def from_dict(cls, payload: object) -> "TypeField":
        data = _as_mapping(payload)
        return cls(
            name=_as_str(data.get("name")),
            type=_as_str(data.get("type")),
            optional=bool(data.get("optional", False)),
        )


@dataclass
class TypeDef(_Serialisable):
    """A named type with an ordered field list."""

    name: str
    fields: List[TypeField] = field(default_factory=list)
    source: SourceLocation = field(default_factory=lambda: SourceLocation("", "unknown", 0))

    def field_names(self) -> set[str]:
        return {item.name for item in self.fields}

    @classmethod
    def from_dict(cls, payload: object) -> "TypeDef":
        data = _as_mapping(payload)
        return cls(
            name=_as_str(data.get("name")),
            fields=[TypeField.from_dict(item) for item in _as_list(data.get("fields"))],
            source=SourceLocation.from_dict(data.get("source")),
        )


@dataclass
class SchemaDef(_Serialisable):
    """Validation schema (zod, pydantic, codable, ...) declared in a repo."""

    name: str
    kind: str = "other"
    fields: List[TypeField] = field(default_factory=list)
    source: SourceLocation = field(default_factory=lambda: SourceLocation("", "unknown", 0))

    def to_type_def(self) -> TypeDef:
        return TypeDef(name=self.name, fields=list(self.fields), source=self.source)

    @classmethod
    def from_dict(cls, payload: object) -> "SchemaDef":
        data = _as_mapping(payload)
        return cls(
            name=_as_str(data.get("name")),
            kind=_as_str(data.get("kind"), "other"),
            fields=[TypeField.from_dict(item) for item in _as_list(data.get("fields"))],
            source=SourceLocation.from_dict(data.get("source")),
        )


@dataclass
class ModelDef(_Serialisable):
    """Persistence model (ORM entity) declared in a repo."""

    name: str
    fields: List[TypeField] = field(default_factory=list)
    source: SourceLocation = field(default_factory=lambda: SourceLocation("", "unknown", 0))
    table_name: Optional[str] = None

    def to_type_def(self) -> TypeDef:
        return TypeDef(name=self.name, fields=list(self.fields), source=self.source)

    @classmethod
    def from_dict(cls, payload: object) -> "ModelDef":
        data = _as_mapping(payload)
        return cls(
            name=_as_str(data.get("name")),
            fields=[TypeField.from_dict(item) for item in _as_list(data.get("fields"))],
            source=SourceLocation.from_dict(data.get("source")),
            table_name=_as_optional_str(data.get("tableName")),
        )


@dataclass
class CommitSummary(_Serialisable):
    sha: str
    message: str
    author: str
    date: str
    files_changed: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: object) -> "CommitSummary":
        data = _as_mapping(payload)
        return cls(
            sha=_as_str(data.get("sha")),
            message=_as_str(data.get("message")),
            author=_as_str(data.get("author")),
            date=_as_str(data.get("date")),
            files_changed=_as_str_list(data.get("filesChanged")),
        )


@dataclass
class ExportDef(_Serialisable):
    """Exported symbol; its signature is where cross-repo references are found."""

    name: str
    kind: str
    signature: str
    file: str
    line: int

    @classmethod
    def from_dict(cls, payload: object) -> "ExportDef":
        data = _as_mapping(payload)
        return cls(
            name=_as_str(data.get("name")),
            kind=_as_str(data.get("kind"), "function"),
            signature=_as_str(data.get("signature")),
            file=_as_str(data.get("file")),
            line=_as_int(data.get("line")),
        )


@dataclass
class RouteDefinition(_Serialisable):
    method: str
    path: str
    handler: str
    file: str
    line: int
    input_type: Optional[str] = None
    output_type: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: object) -> "RouteDefinition":
        data = _as_mapping(payload)
        return cls(
            method=_as_str(data.get("method")),
            path=_as_str(data.get("path")),
            handler=_as_str(data.get("handler")),
            file=_as_str(data.get("file")),
            line=_as_int(data.get("line")),
            input_type=_as_optional_str(data.get("inputType")),
            output_type=_as_optional_str(data.get("outputType")),
        )


@dataclass
class ProcedureDef(_Serialisable):
    """RPC-style procedure (query, mutation or subscription)."""

    name: str
    kind: str
    file: str
    line: int
    input_type: Optional[str] = None
    output_type: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: object) -> "ProcedureDef":
        data = _as_mapping(payload)
        return cls(
            name=_as_str(data.get("name")),
            kind=_as_str(data.get("kind"), "query"),
            file=_as_str(data.get("file")),
            line=_as_int(data.get("line")),
            input_type=_as_optional_str(data.get("inputType")),
            output_type=_as_optional_str(data.get("outputType")),
        )


@dataclass
class GitState(_Serialisable):
    branch: str = "main"
    head_sha: str = ""
    uncommitted_changes: List[str] = field(default_factory=list)
    recent_commits: List[CommitSummary] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: object) -> "GitState":
        data = _as_mapping(payload)
        return cls(
            branch=_as_str(data.get("branch"), "main"),
            head_sha=_as_str(data.get("headSha")),
            uncommitted_changes=_as_str_list(data.get("uncommittedChanges")),
            recent_commits=[
                CommitSummary.from_dict(item) for item in _as_list(data.get("recentCommits"))
            ],
        )


@dataclass
class ApiSurface(_Serialisable):
    routes: List[RouteDefinition] = field(default_factory=list)
    procedures: List[ProcedureDef] = field(default_factory=list)
    exports: List[ExportDef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: object) -> "ApiSurface":
        data = _as_mapping(payload)
        return cls(
            routes=[RouteDefinition.from_dict(item) for item in _as_list(data.get("routes"))],
            procedures=[ProcedureDef.from_dict(item) for item in _as_list(data.get("procedures"))],
            exports=[ExportDef.from_dict(item) for item in _as_list(data.get("exports"))],
        )


@dataclass
class TypeRegistry(_Serialisable):
    types: List[TypeDef] = field(default_factory=list)
    schemas: List[SchemaDef] = field(default_factory=list)
    models: List[ModelDef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: object) -> "TypeRegistry":
        data = _as_mapping(payload)
        return cls(
            types=[TypeDef.from_dict(item) for item in _as_list(data.get("types"))],
            schemas=[SchemaDef.from_dict(item) for item in _as_list(data.get("schemas"))],
            models=[ModelDef.from_dict(item) for item in _as_list(data.get("models"))],
        )


@dataclass
class Conventions(_Serialisable):
    naming: str = "mixed"
    file_organization: str = ""
    error_handling: str = ""
    patterns: List[str] = field(default_factory=list)
    testing_patterns: str = ""

    @classmethod
    def from_dict(cls, payload: object) -> "Conventions":
        data = _as_mapping(payload)
        return cls(
            naming=_as_str(data.get("naming"), "mixed"),
            file_organization=_as_str(data.get("fileOrganization")),
            error_handling=_as_str(data.get("errorHandling")),
            patterns=_as_str_list(data.get("patterns")),
            testing_patterns=_as_str(data.get("testingPatterns")),
        )


@dataclass
class InternalDep(_Serialisable):
    source: str = field(metadata={"key": "from"})
    target: str = field(metadata={"key": "to"})
    imports: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: object) -> "InternalDep":
        data = _as_mapping(payload)
        return cls(
            source=_as_str(data.get("from")),
            target=_as_str(data.get("to")),
            imports=_as_str_list(data.get("imports")),
        )


@dataclass
class PackageDep(_Serialisable):
    name: str
    version: str
    dev: bool = False

    @classmethod
    def from_dict(cls, payload: object) -> "PackageDep":
        data = _as_mapping(payload)
        return cls(
            name=_as_str(data.get("name")),
            version=_as_str(data.get("version")),
            dev=bool(data.get("dev", False)),
        )


@dataclass
class Dependencies(_Serialisable):
    internal: List[InternalDep] = field(default_factory=list)
    external: List[PackageDep] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: object) -> "Dependencies":
        data = _as_mapping(payload)
        return cls(
            internal=[InternalDep.from_dict(item) for item in _as_list(data.get("internal"))],
            external=[PackageDep.from_dict(item) for item in _as_list(data.get("external"))],
        )


@dataclass
class HealthScore(_Serialisable):
    test_coverage: Optional[float] = None
    lint_errors: int = 0
    type_errors: int = 0
    todo_count: int = 0
    dead_code: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: object) -> "HealthScore":
        data = _as_mapping(payload)
        coverage = data.get("testCoverage")
        return cls(
            test_coverage=float(coverage) if isinstance(coverage, (int, float)) else None,
            lint_errors=_as_int(data.get("lintErrors")),
            type_errors=_as_int(data.get("typeErrors")),
            todo_count=_as_int(data.get("todoCount")),
            dead_code=_as_str_list(data.get("deadCode")),
        )


@dataclass
class RepoManifest(_Serialisable):
    """One repository's static-analysis summary, produced by the scanner."""

    repo_id: str
    path: str = ""
    language: str = ""
    git_state: GitState = field(default_factory=GitState)
    api_surface: ApiSurface = field(default_factory=ApiSurface)
    type_registry: TypeRegistry = field(default_factory=TypeRegistry)
    conventions: Conventions = field(default_factory=Conventions)
    dependencies: Dependencies = field(default_factory=Dependencies)
    health: HealthScore = field(default_factory=HealthScore)

    @classmethod
    def from_dict(cls, payload: object) -> "RepoManifest":
        if not isinstance(payload, Mapping):
            raise ManifestError("manifest must be a JSON object")
        repo_id = payload.get("repoId")
        if not isinstance(repo_id, str) or not repo_id:
            raise ManifestError("manifest is missing 'repoId'")
        return cls(
            repo_id=repo_id,
            path=_as_str(payload.get("path")),
            language=_as_str(payload.get("language")),
            git_state=GitState.from_dict(payload.get("gitState")),
            api_surface=ApiSurface.from_dict(payload.get("apiSurface")),
            type_registry=TypeRegistry.from_dict(payload.get("typeRegistry")),
            conventions=Conventions.from_dict(payload.get("conventions")),
            dependencies=Dependencies.from_dict(payload.get("dependencies")),
            health=HealthScore.from_dict(payload.get("health")),
        )


@dataclass
class FileScanResult(_Serialisable):
    """Per-file scanner output, cached by content hash."""

    file_path: str
    sha: str
    scanned_at: str
    exports: List[ExportDef] = field(default_factory=list)
    imports: List[InternalDep] = field(default_factory=list)
    types: List[TypeDef] = field(default_factory=list)
    schemas: List[SchemaDef] = field(default_factory=list)
    routes: List[RouteDefinition] = field(default_factory=list)
    procedures: List[ProcedureDef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: object) -> "FileScanResult":
        if not isinstance(payload, Mapping):
            raise ManifestError("file scan result must be a JSON object")
        if not isinstance(payload.get("filePath"), str) or not isinstance(payload.get("sha"), str):
            raise ManifestError("file scan result is missing 'filePath' or 'sha'")
        return cls(
            file_path=payload["filePath"],
            sha=payload["sha"],
            scanned_at=_as_str(payload.get("scannedAt")),
            exports=[ExportDef.from_dict(item) for item in _as_list(payload.get("exports"))],
            imports=[InternalDep.from_dict(item) for item in _as_list(payload.get("imports"))],
            types=[TypeDef.from_dict(item) for item in _as_list(payload.get("types"))],
            schemas=[SchemaDef.from_dict(item) for item in _as_list(payload.get("schemas"))],
            routes=[RouteDefinition.from_dict(item) for item in _as_list(payload.get("routes"))],
            procedures=[
                ProcedureDef.from_dict(item) for item in _as_list(payload.get("procedures"))
            ],
        )


# --- Graph ---------------------------------------------------------------


@dataclass
class BridgeConsumer(_Serialisable):
    repo: str
    file: str
    line: int


@dataclass
class BridgeProvider(_Serialisable):
    repo: str
    route: str
    handler: str


@dataclass
class BridgeContract(_Serialisable):
    input_type: TypeDef
    output_type: TypeDef
    match_status: str


@dataclass
class ApiBridge(_Serialisable):
    """A consumer export that references another repo's route or procedure."""

    consumer: BridgeConsumer
    provider: BridgeProvider
    contract: BridgeContract


@dataclass
class TypeInstance(_Serialisable):
    repo: str
    type: TypeDef


@dataclass
class TypeLineage(_Serialisable):
    """One concept appearing as a type in several repos."""

    concept: str
    instances: List[TypeInstance]
    alignment: str


@dataclass
class MismatchSide(_Serialisable):
    repo: str
    file: str
    line: int
    field: Optional[str] = None


@dataclass
class Mismatch(_Serialisable):
    kind: str
    description: str
    provider: MismatchSide
    consumer: MismatchSide
    severity: str


@dataclass
class ImpactTrigger(_Serialisable):
    repo: str
    file: str
    change: str


@dataclass
class ImpactTarget(_Serialisable):
    repo: str
    file: str
    line: int
    reason: str
    severity: str


@dataclass
class ImpactPath(_Serialisable):
    trigger: ImpactTrigger
    affected: List[ImpactTarget] = field(default_factory=list)


@dataclass
class EcosystemGraph(_Serialisable):
    """All manifests plus the cross-repo relations derived from them."""

    repos: List[RepoManifest] = field(default_factory=list)
    bridges: List[ApiBridge] = field(default_factory=list)
    shared_types: List[TypeLineage] = field(default_factory=list)
    contract_mismatches: List[Mismatch] = field(default_factory=list)
    impact_paths: List[ImpactPath] = field(default_factory=list)


# --- Evolution / digest --------------------------------------------------


@dataclass
class Evidence(_Serialisable):
    repo: str
    file: str
    line: int
    finding: str


@dataclass
class EvolutionSuggestion(_Serialisable):
    id: str
    category: str
    title: str
    description: str
    evidence: List[Evidence] = field(default_factory=list)
    estimated_effort: str = "medium"
    estimated_impact: str = "medium"
    affected_repos: List[str] = field(default_factory=list)


@dataclass
class DigestRepo(_Serialisable):
    name: str
    language: str
    branch: str
    uncommitted_count: int
    commits_behind: int = 0


@dataclass
class ContractStatus(_Serialisable):
    total: int
    exact: int
    compatible: int
    mismatches: List[Mismatch] = field(default_factory=list)


@dataclass
class EcosystemDigest(_Serialisable):
    """Bounded summary of the ecosystem handed to downstream consumers."""

    generated_at: str
    config_sha: str
    repos: List[DigestRepo]
    contract_status: ContractStatus
    evolution_opportunities: List[EvolutionSuggestion]
    convention_summary: Dict[str, str]
    api_surface_summary: str
    recent_changes_summary: str
    token_count: int


# ------------------------------------------------------------------
# Internal helpers


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _as_mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: object) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _as_str(value: object, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _as_optional_str(value: object) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def _as_str_list(value: object) -> List[str]:
    return [item for item in _as_list(value) if isinstance(item, str)]


__all__ = [
    "ApiBridge",
    "ApiSurface",
    "BridgeConsumer",
    "BridgeContract",
    "BridgeProvider",
    "CommitSummary",
    "ContractStatus",
    "Conventions",
    "Dependencies",
    "DigestRepo",
    "EcosystemDigest",
    "EcosystemGraph",
    "Evidence",
    "EvolutionSuggestion",
    "ExportDef",
    "FileScanResult",
    "GitState",
    "HealthScore",
    "ImpactPath",
    "ImpactTarget",
    "ImpactTrigger",
    "InternalDep",
    "MATCH_STATUSES",
    "ManifestError",
    "Mismatch",
    "MismatchSide",
    "ModelDef",
    "PackageDep",
    "ProcedureDef",
    "RepoManifest",
    "RouteDefinition",
    "SEVERITIES",
    "SchemaDef",
    "SourceLocation",
    "TypeDef",
    "TypeField",
    "TypeInstance",
    "TypeLineage",
    "TypeRegistry",
    "to_dict",
]
