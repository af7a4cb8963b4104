"""Manifest model parsing and serialisation tests."""

from __future__ import annotations

import pytest

from omnilink.models import FileScanResult, ManifestError, RepoManifest

MANIFEST = {
    "repoId": "backend",
    "path": "/work/backend",
    "language": "typescript",
    "gitState": {
        "branch": "feature/users",
        "headSha": "abc123",
        "uncommittedChanges": ["src/user.ts"],
        "recentCommits": [
            {
                "sha": "abc123",
                "message": "Add users route",
                "author": "dev",
                "date": "2024-05-01T10:00:00Z",
                "filesChanged": ["src/routes.ts"],
            }
        ],
    },
    "apiSurface": {
        "routes": [
            {
                "method": "GET",
                "path": "/api/users",
                "handler": "listUsers",
                "file": "src/routes.ts",
                "line": 12,
                "outputType": "User",
            }
        ],
        "procedures": [],
        "exports": [],
    },
    "typeRegistry": {
        "types": [
            {
                "name": "User",
                "fields": [{"name": "id", "type": "string"}, {"name": "email", "type": "string", "optional": True}],
                "source": {"repo": "backend", "file": "src/user.ts", "line": 4},
            }
        ],
        "schemas": [],
        "models": [],
    },
    "conventions": {
        "naming": "camelCase",
        "fileOrganization": "feature-based",
        "errorHandling": "try-catch",
        "patterns": ["repository"],
        "testingPatterns": "jest",
    },
    "dependencies": {
        "internal": [{"from": "src/routes.ts", "to": "src/user.ts", "imports": ["User"]}],
        "external": [{"name": "express", "version": "4.19.0", "dev": False}],
    },
    "health": {
        "testCoverage": 81.5,
        "lintErrors": 2,
        "typeErrors": 0,
        "todoCount": 3,
        "deadCode": [],
    },
}


def test_manifest_round_trips_through_camel_case_json() -> None:
    manifest = RepoManifest.from_dict(MANIFEST)

    assert manifest.git_state.uncommitted_changes == ["src/user.ts"]
    assert manifest.api_surface.routes[0].output_type == "User"
    assert manifest.api_surface.routes[0].input_type is None
    assert manifest.type_registry.types[0].fields[1].optional is True
    assert manifest.dependencies.internal[0].source == "src/routes.ts"

    payload = manifest.to_dict()
    assert payload["gitState"]["headSha"] == "abc123"
    assert payload["dependencies"]["internal"][0]["from"] == "src/routes.ts"
    assert payload["dependencies"]["internal"][0]["to"] == "src/user.ts"
    assert RepoManifest.from_dict(payload) == manifest


def test_manifest_tolerates_missing_sections() -> None:
    manifest = RepoManifest.from_dict({"repoId": "web"})

    assert manifest.git_state.branch == "main"
    assert manifest.api_surface.routes == []
    assert manifest.type_registry.types == []
    assert manifest.health.test_coverage is None


@pytest.mark.parametrize("payload", [{}, {"repoId": ""}, ["not", "an", "object"]])
def test_manifest_requires_repo_id(payload: object) -> None:
    with pytest.raises(ManifestError):
        RepoManifest.from_dict(payload)


def test_file_scan_result_requires_path_and_sha() -> None:
    with pytest.raises(ManifestError):
        FileScanResult.from_dict({"filePath": "src/a.ts"})

    result = FileScanResult.from_dict(
        {"filePath": "src/a.ts", "sha": "f00d", "scannedAt": "2024-05-01T00:00:00Z"}
    )
    assert result.exports == []
    assert result.to_dict()["filePath"] == "src/a.ts"
