"""Tests for the two-tier scan cache."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from omnilink.models import FileScanResult, TypeDef, TypeField
from omnilink.stores import (
    CacheRoot,
    get_cached_file,
    get_cached_manifest,
    invalidate_repo,
    prune_old,
    sanitize_repo_name,
    set_cached_file,
    set_cached_manifest,
)
from omnilink.stores.scan_cache import file_entry_path, manifest_entry_path
from tests._fixtures.manifests import make_commit, make_manifest, make_type

DAY = 24 * 60 * 60


def _scan_result(sha: str = "f00d") -> FileScanResult:
    return FileScanResult(
        file_path="src/user.ts",
        sha=sha,
        scanned_at="2024-05-01T00:00:00Z",
        types=[TypeDef(name="User", fields=[TypeField(name="id", type="string")])],
    )


def test_file_tier_round_trip(cache_root: CacheRoot) -> None:
    result = _scan_result()
    set_cached_file(cache_root, "backend", "f00d", result)

    assert get_cached_file(cache_root, "backend", "f00d") == result
    assert get_cached_file(cache_root, "backend", "beef") is None
    assert get_cached_file(cache_root, "ios-app", "f00d") is None


def test_manifest_tier_round_trip(cache_root: CacheRoot) -> None:
    manifest = make_manifest(
        "backend",
        types=[make_type("User", ["id", "email"])],
        commits=[make_commit("abc1234", "Add users", "2024-05-01T10:00:00Z")],
        head_sha="abc1234",
    )
    set_cached_manifest(cache_root, "backend", "abc1234", manifest)

    assert get_cached_manifest(cache_root, "backend", "abc1234") == manifest
    assert get_cached_manifest(cache_root, "backend", "0000000") is None
    assert manifest_entry_path(cache_root, "backend", "abc1234").is_file()


def test_get_before_any_set_is_a_miss(tmp_path: Path) -> None:
    root = CacheRoot(tmp_path / "never-created")

    assert get_cached_file(root, "backend", "f00d") is None
    assert get_cached_manifest(root, "backend", "abc") is None


def test_corrupt_or_partial_entries_read_as_misses(cache_root: CacheRoot) -> None:
    path = file_entry_path(cache_root, "backend", "f00d")
    path.parent.mkdir(parents=True)

    path.write_text('{"filePath": "src/user.ts", "sha"', encoding="utf-8")
    assert get_cached_file(cache_root, "backend", "f00d") is None

    path.write_text("", encoding="utf-8")
    assert get_cached_file(cache_root, "backend", "f00d") is None

    path.write_text("[1, 2, 3]", encoding="utf-8")
    assert get_cached_file(cache_root, "backend", "f00d") is None

    path.write_text('{"scannedAt": "now"}', encoding="utf-8")
    assert get_cached_file(cache_root, "backend", "f00d") is None


def test_sanitised_names_share_a_subtree(cache_root: CacheRoot) -> None:
    assert sanitize_repo_name("org/app v2") == "org-app-v2"
    set_cached_file(cache_root, "org/app", "f00d", _scan_result())

    # Distinct names that sanitise identically collide.
    assert get_cached_file(cache_root, "org:app", "f00d") is not None


def test_invalidate_removes_both_tiers(cache_root: CacheRoot) -> None:
    set_cached_file(cache_root, "backend", "f00d", _scan_result())
    set_cached_manifest(cache_root, "backend", "abc", make_manifest("backend"))
    set_cached_file(cache_root, "ios-app", "f00d", _scan_result())

    invalidate_repo(cache_root, "backend")

    assert get_cached_file(cache_root, "backend", "f00d") is None
    assert get_cached_manifest(cache_root, "backend", "abc") is None
    assert get_cached_file(cache_root, "ios-app", "f00d") is not None
    invalidate_repo(cache_root, "backend")


def test_prune_old_honours_cutoff(cache_root: CacheRoot, clock) -> None:
    old = file_entry_path(cache_root, "backend", "old")
    boundary = file_entry_path(cache_root, "backend", "boundary")
    fresh = file_entry_path(cache_root, "backend", "fresh")
    for sha in ("old", "boundary", "fresh"):
        set_cached_file(cache_root, "backend", sha, _scan_result(sha))

    cutoff = clock.now - 7 * DAY
    os.utime(old, (cutoff - 1, cutoff - 1))
    os.utime(boundary, (cutoff, cutoff))
    os.utime(fresh, (clock.now, clock.now))

    removed = prune_old(cache_root, 7)

    assert removed == 1
    assert not old.exists()
    assert boundary.exists()
    assert fresh.exists()


def test_prune_old_removes_emptied_directories(cache_root: CacheRoot, clock) -> None:
    set_cached_file(cache_root, "backend", "f00d", _scan_result())
    set_cached_manifest(cache_root, "ios-app", "abc", make_manifest("ios-app"))
    stale = clock.now - 30 * DAY
    os.utime(file_entry_path(cache_root, "backend", "f00d"), (stale, stale))

    assert prune_old(cache_root, 7) == 1

    assert not (cache_root.directory / "backend").exists()
    assert (cache_root.directory / "ios-app").is_dir()


def test_prune_old_on_missing_root_is_noop(tmp_path: Path) -> None:
    assert prune_old(CacheRoot(tmp_path / "missing"), 7) == 0


def test_invalidate_rejects_empty_repo_name(cache_root: CacheRoot) -> None:
    set_cached_file(cache_root, "backend", "f00d", _scan_result())

    with pytest.raises(ValueError):
        invalidate_repo(cache_root, "")

    assert cache_root.directory.is_dir()
    assert get_cached_file(cache_root, "backend", "f00d") is not None


def test_prune_old_skips_entries_it_cannot_remove(
    cache_root: CacheRoot, clock, monkeypatch: pytest.MonkeyPatch
) -> None:
    stale = clock.now - 30 * DAY
    for sha in ("locked", "loose"):
        set_cached_file(cache_root, "backend", sha, _scan_result(sha))
        os.utime(file_entry_path(cache_root, "backend", sha), (stale, stale))
    locked = file_entry_path(cache_root, "backend", "locked")
    real_unlink = os.unlink

    def unlink(path, *args, **kwargs):
        if os.fspath(path) == os.fspath(locked):
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real_unlink(path, *args, **kwargs)

    monkeypatch.setattr(os, "unlink", unlink)

    assert prune_old(cache_root, 7) == 1
    assert locked.exists()
    assert not file_entry_path(cache_root, "backend", "loose").exists()
