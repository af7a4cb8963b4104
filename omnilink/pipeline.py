"""Pipeline orchestration: manifests -> ecosystem graph -> context digest."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .config import OmniLinkConfig, RepoConfig
from .context import ContextResult, build_context
from .evolution import EvolutionAnalyzer
from .grapher import build_ecosystem_graph
from .logging import get_logger
from .models import ManifestError, RepoManifest
from .stores import CacheRoot, get_cached_manifest, prune_old, set_cached_manifest

GitRunner = Callable[[Iterable[str], Path], str]


def load_manifest(path: Path) -> RepoManifest:
    """Read one scanner manifest from a JSON file."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ManifestError(f"Manifest not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ManifestError(f"Failed to read manifest {path}: {exc}") from exc
    return RepoManifest.from_dict(payload)


class Pipeline:
    """Coordinates one omnilink run over the configured repos."""

    def __init__(
        self,
        config: OmniLinkConfig,
        *,
        cache_root: CacheRoot | None = None,
        use_cache: bool = True,
        evolution_analyzer: Optional[EvolutionAnalyzer] = None,
        git_runner: GitRunner | None = None,
    ) -> None:
        self.config = config
        self.cache_root = cache_root or CacheRoot(config.cache.directory)
        self.use_cache = use_cache
        self.evolution_analyzer = evolution_analyzer
        self._git = git_runner or _default_git_runner
        self.logger = get_logger("pipeline")

    def run(self, manifest_dir: Path) -> ContextResult:
        """Load manifests, build the graph and render the digest."""
        if self.use_cache:
            prune_old(self.cache_root, self.config.cache.max_age_days)
        manifests = self.load_manifests(manifest_dir)
        graph = build_ecosystem_graph(manifests)
        result = build_context(graph, self.config, self.evolution_analyzer)
        self.logger.info(
            "Digest ready: %d repos, %d tokens (config %s)",
            len(result.digest.repos),
            result.digest.token_count,
            result.digest.config_sha,
        )
        return result

    def load_manifests(self, manifest_dir: Path) -> List[RepoManifest]:
        """Return one manifest per configured repo, in configuration order.

        ``<manifest_dir>/<repo name>.json`` wins and is written to the cache
        under its head commit. Without that file, the manifest cached for the
        repo's current HEAD is reused. Each manifest's ``repoId`` must equal
        the configured repo name; every missing, unreadable or misnamed
        manifest is reported in a single ``ManifestError``.
        """
        manifests: List[RepoManifest] = []
        missing: List[str] = []
        problems: List[str] = []
        for repo in self.config.repos:
            try:
                manifest = self._load_repo_manifest(repo, Path(manifest_dir))
            except ManifestError as exc:
                problems.append(str(exc))
                continue
            if manifest is None:
                missing.append(repo.name)
            else:
                manifests.append(manifest)
        if missing:
            problems.insert(
                0,
                f"No manifest available for: {', '.join(missing)} (looked in {manifest_dir})",
            )
        if problems:
            raise ManifestError("; ".join(problems))
        return manifests

    def _load_repo_manifest(self, repo: RepoConfig, manifest_dir: Path) -> RepoManifest | None:
        manifest_file = manifest_dir / f"{repo.name}.json"
        if manifest_file.is_file():
            manifest = load_manifest(manifest_file)
            if manifest.repo_id != repo.name:
                raise ManifestError(
                    f"{manifest_file} has repoId '{manifest.repo_id}', "
                    f"expected '{repo.name}'"
                )
            head_sha = manifest.git_state.head_sha
            if self.use_cache and head_sha:
                set_cached_manifest(self.cache_root, repo.name, head_sha, manifest)
            self.logger.debug("Loaded manifest for %s from %s", repo.name, manifest_file)
            return manifest

        if not self.use_cache:
            return None
        head_sha = self._head_sha(repo)
        if head_sha is None:
            return None
        cached = get_cached_manifest(self.cache_root, repo.name, head_sha)
        if cached is not None:
            if cached.repo_id != repo.name:
                raise ManifestError(
                    f"Cached manifest for {repo.name} at {head_sha[:7]} has repoId "
                    f"'{cached.repo_id}'"
                )
            self.logger.debug("Cache hit for %s at %s", repo.name, head_sha[:7])
        else:
            self.logger.debug("Cache miss for %s at %s", repo.name, head_sha[:7])
        return cached

    def _head_sha(self, repo: RepoConfig) -> str | None:
        try:
            output = self._git(["git", "rev-parse", "HEAD"], Path(repo.path).expanduser())
        except (OSError, subprocess.CalledProcessError) as exc:
            self.logger.debug("Could not resolve HEAD for %s: %s", repo.name, exc)
            return None
        sha = output.strip()
        return sha or None


def _default_git_runner(args: Iterable[str], cwd: Path) -> str:
    completed = subprocess.run(
        list(args),
        cwd=str(cwd),
        check=True,
        text=True,
        capture_output=True,
    )
    return completed.stdout


__all__ = ["GitRunner", "Pipeline", "load_manifest"]
