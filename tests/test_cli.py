"""CLI behaviour tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from omnilink.cli import _build_parser, main
from omnilink.stores import CacheRoot, get_cached_manifest, set_cached_manifest
from tests._fixtures.manifests import make_manifest, users_scenario

CONFIG = """\
repos:
  - name: backend
    path: ../backend
    language: typescript
  - name: ios-app
    path: ../ios-app
    language: swift
context:
  tokenBudget: 8000
cache:
  directory: cache
"""


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / ".omnilink.yml").write_text(CONFIG, encoding="utf-8")
    manifests = tmp_path / "manifests"
    manifests.mkdir()
    for manifest in users_scenario(["id", "email", "phone"]):
        manifest.git_state.head_sha = f"{manifest.repo_id}-head"
        (manifests / f"{manifest.repo_id}.json").write_text(
            json.dumps(manifest.to_dict()), encoding="utf-8"
        )
    return tmp_path


def test_cli_accepts_verbose_before_and_after_command() -> None:
    parser = _build_parser()

    before = parser.parse_args(["--verbose", "digest", "--manifests", "m"])
    after = parser.parse_args(["digest", "--manifests", "m", "-v"])

    assert before.verbose is True
    assert after.verbose is True
    assert after.command == "digest"
    assert after.config == "."


def test_cli_parses_cache_commands() -> None:
    parser = _build_parser()

    prune = parser.parse_args(["cache", "prune", "--max-age-days", "2"])
    invalidate = parser.parse_args(["cache", "invalidate", "backend"])

    assert prune.cache_command == "prune"
    assert prune.max_age_days == 2.0
    assert invalidate.repo == "backend"


def test_digest_prints_markdown(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(["digest", "--config", str(workspace), "--manifests", str(workspace / "manifests")])

    out = capsys.readouterr().out
    assert out.startswith("# OMNILINK ECOSYSTEM STATE")
    assert "[BREAKING]" in out


def test_digest_prints_json(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(
        [
            "digest",
            "--config",
            str(workspace / ".omnilink.yml"),
            "--manifests",
            str(workspace / "manifests"),
            "--json",
        ]
    )

    payload = json.loads(capsys.readouterr().out)
    assert [repo["name"] for repo in payload["repos"]] == ["backend", "ios-app"]
    assert len(payload["configSha"]) == 12
    assert payload["contractStatus"]["mismatches"][0]["severity"] == "breaking"


def test_invalid_config_exits_with_every_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / ".omnilink.yml").write_text("repos: []\ncontext:\n  prioritize: loudest\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["digest", "--config", str(tmp_path), "--manifests", str(tmp_path)])

    assert excinfo.value.code == 1
    err = capsys.readouterr().err
    assert "repos: must have at least 1 repo" in err
    assert "context.prioritize" in err


def test_missing_manifest_exits_nonzero(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (workspace / "manifests" / "ios-app.json").unlink()

    with pytest.raises(SystemExit) as excinfo:
        main(
            [
                "digest",
                "--config",
                str(workspace),
                "--manifests",
                str(workspace / "manifests"),
                "--no-cache",
            ]
        )

    assert excinfo.value.code == 1
    assert "ios-app" in capsys.readouterr().err


def test_cache_invalidate_and_prune(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = CacheRoot(workspace / "cache")
    set_cached_manifest(root, "backend", "abc", make_manifest("backend"))

    main(["cache", "invalidate", "backend", "--config", str(workspace)])
    main(["cache", "prune", "--config", str(workspace)])

    out = capsys.readouterr().out
    assert "Cleared cached data for backend" in out
    assert "Removed 0 cache entries older than 7 days" in out
    assert get_cached_manifest(root, "backend", "abc") is None


def test_cache_prune_rejects_negative_age() -> None:
    parser = _build_parser()

    with pytest.raises(SystemExit) as excinfo:
        parser.parse_args(["cache", "prune", "--max-age-days", "-1"])

    assert excinfo.value.code == 2


def test_cache_invalidate_with_empty_name_keeps_cache(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    root = CacheRoot(workspace / "cache")
    set_cached_manifest(root, "backend", "abc", make_manifest("backend"))

    with pytest.raises(SystemExit) as excinfo:
        main(["cache", "invalidate", "", "--config", str(workspace)])

    assert excinfo.value.code == 1
    assert "must not be empty" in capsys.readouterr().err
    assert get_cached_manifest(root, "backend", "abc") is not None
