"""Persistent stores used by omnilink."""

from .scan_cache import (
    CacheRoot,
    get_cached_file,
    get_cached_manifest,
    invalidate_repo,
    prune_old,
    sanitize_repo_name,
    set_cached_file,
    set_cached_manifest,
)

__all__ = [
    "CacheRoot",
    "get_cached_file",
    "get_cached_manifest",
    "invalidate_repo",
    "prune_old",
    "sanitize_repo_name",
    "set_cached_file",
    "set_cached_manifest",
]
