"""Cross-repo type lineage detection."""

from __future__ import annotations

from typing import Dict, List, Sequence, Set

from ..models import RepoManifest, TypeDef, TypeField, TypeInstance, TypeLineage

CONCEPT_SUFFIXES = (
    "DTO", "Dto", "dto",
    "Model", "model",
    "Entity", "entity",
    "Schema", "schema",
    "Response", "response",
    "Request", "request",
    "Input", "input",
    "Output", "output",
    "Payload", "payload",
    "Data", "data",
    "Type", "type",
    "Params", "params",
    "Args", "args",
    "Form", "form",
    "FormData",
)
SIMILARITY_THRESHOLD = 0.5


def map_type_flows(manifests: Sequence[RepoManifest]) -> List[TypeLineage]:
    """Group types that represent the same concept in different repos.

    Types match by exact name, by name with a DTO/Model/... suffix stripped,
    and, for types left ungrouped, by Jaccard similarity of field names.
    """
    if len(manifests) < 2:
        return []

    types_by_repo: Dict[str, List[TypeDef]] = {}
    for manifest in manifests:
        registry = manifest.type_registry
        types_by_repo[manifest.repo_id] = [
            *registry.types,
            *(schema.to_type_def() for schema in registry.schemas),
            *(model.to_type_def() for model in registry.models),
        ]

    concepts: Dict[str, List[TypeInstance]] = {}
    for repo_id, types in types_by_repo.items():
        for type_def in types:
            for concept in concept_names(type_def.name):
                _add_instance(concepts.setdefault(concept, []), repo_id, type_def)

    ungrouped: Dict[str, List[TypeDef]] = {}
    for repo_id, types in types_by_repo.items():
        pending = [
            type_def
            for type_def in types
            if not any(
                len({inst.repo for inst in concepts.get(name, [])}) > 1
                for name in concept_names(type_def.name)
            )
        ]
        if pending:
            ungrouped[repo_id] = pending

    repo_ids = list(ungrouped)
    for i, repo_a in enumerate(repo_ids):
        for repo_b in repo_ids[i + 1 :]:
            for type_a in ungrouped[repo_a]:
                if not type_a.fields:
                    continue
                for type_b in ungrouped[repo_b]:
                    if not type_b.fields:
                        continue
                    if jaccard_similarity(type_a.fields, type_b.fields) > SIMILARITY_THRESHOLD:
                        concept = pick_concept_name(type_a.name, type_b.name)
                        bucket = concepts.setdefault(concept, [])
                        _add_instance(bucket, repo_a, type_a)
                        _add_instance(bucket, repo_b, type_b)

    lineages: List[TypeLineage] = []
    for concept, instances in concepts.items():
        if len({inst.repo for inst in instances}) < 2:
            continue
        lineages.append(
            TypeLineage(
                concept=concept,
                instances=list(instances),
                alignment=determine_alignment([inst.type for inst in instances]),
            )
        )
    return lineages


def concept_names(type_name: str) -> List[str]:
    """The name itself plus every suffix-stripped variant of at least 2 chars."""
    names = [type_name]
    for suffix in CONCEPT_SUFFIXES:
        if type_name.endswith(suffix) and len(type_name) > len(suffix):
            stripped = type_name[: -len(suffix)]
            if len(stripped) >= 2 and stripped not in names:
                names.append(stripped)
    return names


def strip_all_suffixes(name: str) -> str:
    result = name
    for suffix in CONCEPT_SUFFIXES:
        if result.endswith(suffix) and len(result) > len(suffix):
            result = result[: -len(suffix)]
    return result


def pick_concept_name(name_a: str, name_b: str) -> str:
    stripped_a = strip_all_suffixes(name_a)
    stripped_b = strip_all_suffixes(name_b)
    if stripped_a.lower() == stripped_b.lower():
        return stripped_a
    return stripped_a if len(name_a) <= len(name_b) else stripped_b


def jaccard_similarity(fields_a: Sequence[TypeField], fields_b: Sequence[TypeField]) -> float:
    """Field-name overlap, case-insensitive; field types differ across languages."""
    set_a = {f.name.lower() for f in fields_a}
    set_b = {f.name.lower() for f in fields_b}
    if not set_a and not set_b:
        return 1.0
    union = set_a | set_b
    return len(set_a & set_b) / len(union)


def determine_alignment(types: Sequence[TypeDef]) -> str:
    if len(types) < 2:
        return "aligned"
    field_sets: List[Set[str]] = [t.field_names() for t in types]
    if all(fields == field_sets[0] for fields in field_sets):
        return "aligned"
    for i, left in enumerate(field_sets):
        for j, right in enumerate(field_sets):
            if i != j and left < right:
                return "subset"
    return "diverged"


def _add_instance(bucket: List[TypeInstance], repo: str, type_def: TypeDef) -> None:
    if not any(inst.repo == repo and inst.type.name == type_def.name for inst in bucket):
        bucket.append(TypeInstance(repo=repo, type=type_def))


__all__ = [
    "concept_names",
    "determine_alignment",
    "jaccard_similarity",
    "map_type_flows",
    "pick_concept_name",
]
