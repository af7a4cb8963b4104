"""Content-addressed on-disk cache for scanner outputs.

Layout under the cache root::

    <root>/<repo>/files/<sha>.json          per-file scan results
    <root>/<repo>/manifest-<headSha>.json   whole-repo manifests

Repo names are sanitised to ``[A-Za-z0-9_-]`` with every other character
replaced by ``-``; two repos whose names sanitise to the same string share a
subtree. Writes are plain last-writer-wins file writes without locking, so a
reader racing a writer on the same key may see a partial file. Such reads
decode as misses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
import re
import shutil
import time
from typing import Any, Callable, Dict, Optional

from ..logging import get_logger
from ..models import FileScanResult, ManifestError, RepoManifest

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_SECONDS_PER_DAY = 24 * 60 * 60

logger = get_logger("stores.scan_cache")


@dataclass(frozen=True)
class CacheRoot:
    """Cache directory plus the clock used for age-based pruning."""

    directory: Path
    clock: Callable[[], float] = field(default=time.time, compare=False)


def sanitize_repo_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("-", name)


def repo_dir(root: CacheRoot, repo: str) -> Path:
    return Path(root.directory) / sanitize_repo_name(repo)


def file_entry_path(root: CacheRoot, repo: str, sha: str) -> Path:
    return repo_dir(root, repo) / "files" / f"{sha}.json"


def manifest_entry_path(root: CacheRoot, repo: str, head_sha: str) -> Path:
    return repo_dir(root, repo) / f"manifest-{head_sha}.json"


# --- File tier -----------------------------------------------------------


def get_cached_file(root: CacheRoot, repo: str, sha: str) -> Optional[FileScanResult]:
    """Return the cached scan result for a file's content hash, or None."""
    payload = _read_json(file_entry_path(root, repo, sha))
    if payload is None:
        return None
    try:
        return FileScanResult.from_dict(payload)
    except ManifestError as exc:
        logger.warning("Ignoring malformed file cache entry %s/%s: %s", repo, sha, exc)
        return None


def set_cached_file(root: CacheRoot, repo: str, sha: str, result: FileScanResult) -> None:
    _write_json(file_entry_path(root, repo, sha), result.to_dict())


# --- Manifest tier -------------------------------------------------------


def get_cached_manifest(root: CacheRoot, repo: str, head_sha: str) -> Optional[RepoManifest]:
    """Return the manifest cached for ``repo`` at ``head_sha``, or None."""
    payload = _read_json(manifest_entry_path(root, repo, head_sha))
    if payload is None:
        return None
    try:
        return RepoManifest.from_dict(payload)
    except ManifestError as exc:
        logger.warning("Ignoring malformed manifest cache entry %s@%s: %s", repo, head_sha, exc)
        return None


def set_cached_manifest(
    root: CacheRoot, repo: str, head_sha: str, manifest: RepoManifest
) -> None:
    _write_json(manifest_entry_path(root, repo, head_sha), manifest.to_dict())


# --- Invalidation / pruning ----------------------------------------------


def invalidate_repo(root: CacheRoot, repo: str) -> None:
    """Remove every cached entry (both tiers) for ``repo``.

    Raises ``ValueError`` when ``repo`` sanitises to an empty name, which
    would otherwise address the cache root itself.
    """
    if not sanitize_repo_name(repo):
        raise ValueError("Repository name must not be empty")
    target = repo_dir(root, repo)
    if target.exists():
        shutil.rmtree(target, ignore_errors=True)
        logger.debug("Invalidated cache for %s", repo)


def prune_old(root: CacheRoot, max_age_days: float) -> int:
    """Delete entries older than ``max_age_days`` and any emptied directories.

    Returns the number of files removed. A missing root is a no-op.
    """
    cutoff = root.clock() - max_age_days * _SECONDS_PER_DAY
    removed = _prune_dir(Path(root.directory), cutoff)
    if removed:
        logger.debug("Pruned %d cache entries older than %s days", removed, max_age_days)
    return removed


# ------------------------------------------------------------------
# Internal helpers


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug("Cache read failed for %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        return None
    return data


def _write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _prune_dir(directory: Path, cutoff: float) -> int:
    try:
        entries = list(os.scandir(directory))
    except (FileNotFoundError, NotADirectoryError):
        return 0
    except OSError as exc:
        logger.debug("Skipping unreadable cache directory %s: %s", directory, exc)
        return 0
    removed = 0
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                removed += _prune_dir(Path(entry.path), cutoff)
                # Entries may be written or removed concurrently.
                try:
                    os.rmdir(entry.path)
                except OSError:
                    pass
            elif entry.is_file(follow_symlinks=False):
                if entry.stat(follow_symlinks=False).st_mtime < cutoff:
                    os.unlink(entry.path)
                    removed += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.debug("Could not prune cache entry %s: %s", entry.path, exc)
    return removed


__all__ = [
    "CacheRoot",
    "file_entry_path",
    "get_cached_file",
    "get_cached_manifest",
    "invalidate_repo",
    "manifest_entry_path",
    "prune_old",
    "repo_dir",
    "sanitize_repo_name",
    "set_cached_file",
    "set_cached_manifest",
]
