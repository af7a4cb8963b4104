"""Configuration loading and validation for omnilink (.omnilink.yml / .omnilink.json)."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import yaml

CONFIG_FILENAMES = (".omnilink.yml", ".omnilink.yaml", ".omnilink.json")
MAX_REPOS = 4
PRIORITY_POLICIES = ("changed-files-first", "api-surface-first")
AGGRESSIVENESS_LEVELS = ("aggressive", "moderate", "on-demand")
STRICTNESS_LEVELS = ("strict", "moderate", "relaxed")
DEFAULT_CATEGORIES = ("feature", "performance", "monetization", "scale", "security")
CONFIG_SHA_LENGTH = 12


class ConfigError(RuntimeError):
    """Raised when the configuration cannot be read or fails validation."""

    def __init__(self, message: str, errors: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.errors = list(errors)


@dataclass(frozen=True)
class RepoConfig:
    """One configured repository."""

    name: str
    path: str
    language: str
    role: str = ""


@dataclass(frozen=True)
class EvolutionConfig:
    aggressiveness: str = "aggressive"
    max_suggestions_per_session: int = 5
    categories: Tuple[str, ...] = DEFAULT_CATEGORIES


@dataclass(frozen=True)
class QualityConfig:
    block_on_failure: bool = True
    require_tests_for_new_code: bool = True
    convention_strictness: str = "strict"


@dataclass(frozen=True)
class ContextConfig:
    """Digest budget settings."""

    token_budget: int = 8000
    prioritize: str = "changed-files-first"
    include_recent_commits: int = 20


def _default_cache_dir() -> Path:
    return Path.home() / ".omnilink" / "cache"


@dataclass(frozen=True)
class CacheConfig:
    directory: Path = field(default_factory=_default_cache_dir)
    max_age_days: float = 7


@dataclass(frozen=True)
class OmniLinkConfig:
    """Fully populated, immutable configuration for one run."""

    repos: Tuple[RepoConfig, ...]
    evolution: EvolutionConfig = field(default_factory=EvolutionConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repos": [
                {"name": r.name, "path": r.path, "language": r.language, "role": r.role}
                for r in self.repos
            ],
            "evolution": {
                "aggressiveness": self.evolution.aggressiveness,
                "maxSuggestionsPerSession": self.evolution.max_suggestions_per_session,
                "categories": list(self.evolution.categories),
            },
            "quality": {
                "blockOnFailure": self.quality.block_on_failure,
                "requireTestsForNewCode": self.quality.require_tests_for_new_code,
                "conventionStrictness": self.quality.convention_strictness,
            },
            "context": {
                "tokenBudget": self.context.token_budget,
                "prioritize": self.context.prioritize,
                "includeRecentCommits": self.context.include_recent_commits,
            },
            "cache": {
                "directory": str(self.cache.directory),
                "maxAgeDays": self.cache.max_age_days,
            },
        }


@dataclass(frozen=True)
class ValidConfig:
    config: OmniLinkConfig


@dataclass(frozen=True)
class InvalidConfig:
    errors: Tuple[str, ...]


ConfigResult = Union[ValidConfig, InvalidConfig]


def validate_config(raw: object) -> ConfigResult:
    """Check raw configuration data, collecting every violation found."""
    if not isinstance(raw, Mapping):
        return InvalidConfig(("config: must contain a mapping at the root",))

    errors: List[str] = []
    errors.extend(_repo_errors(raw.get("repos")))

    for section in ("evolution", "quality", "context", "cache"):
        value = raw.get(section)
        if value is not None and not isinstance(value, Mapping):
            errors.append(f"{section}: must be a mapping")

    evolution = _as_dict(raw.get("evolution"))
    aggressiveness = _pick(evolution, "aggressiveness")
    if aggressiveness is not None and aggressiveness not in AGGRESSIVENESS_LEVELS:
        errors.append(
            f"evolution.aggressiveness: expected one of {', '.join(AGGRESSIVENESS_LEVELS)}"
        )
    max_suggestions = _pick(evolution, "maxSuggestionsPerSession", "max_suggestions_per_session")
    if max_suggestions is not None and not _is_int(max_suggestions, minimum=0):
        errors.append("evolution.maxSuggestionsPerSession: must be a non-negative integer")
    categories = _pick(evolution, "categories")
    if categories is not None and (
        not isinstance(categories, list) or not all(isinstance(c, str) for c in categories)
    ):
        errors.append("evolution.categories: must be a list of strings")

    quality = _as_dict(raw.get("quality"))
    strictness = _pick(quality, "conventionStrictness", "convention_strictness")
    if strictness is not None and strictness not in STRICTNESS_LEVELS:
        errors.append(
            f"quality.conventionStrictness: expected one of {', '.join(STRICTNESS_LEVELS)}"
        )

    context = _as_dict(raw.get("context"))
    budget = _pick(context, "tokenBudget", "token_budget")
    if budget is not None and not _is_int(budget, minimum=1):
        errors.append("context.tokenBudget: must be a positive integer")
    prioritize = _pick(context, "prioritize")
    if prioritize is not None and prioritize not in PRIORITY_POLICIES:
        errors.append(f"context.prioritize: expected one of {', '.join(PRIORITY_POLICIES)}")
    recent = _pick(context, "includeRecentCommits", "include_recent_commits")
    if recent is not None and not _is_int(recent, minimum=0):
        errors.append("context.includeRecentCommits: must be a non-negative integer")

    cache = _as_dict(raw.get("cache"))
    directory = _pick(cache, "directory")
    if directory is not None and not isinstance(directory, str):
        errors.append("cache.directory: must be a string path")
    max_age = _pick(cache, "maxAgeDays", "max_age_days")
    if max_age is not None and (
        isinstance(max_age, bool) or not isinstance(max_age, (int, float)) or max_age < 0
    ):
        errors.append("cache.maxAgeDays: must be a non-negative number")

    if errors:
        return InvalidConfig(tuple(errors))
    return ValidConfig(merge_config(raw))


def merge_config(raw: Mapping[str, Any]) -> OmniLinkConfig:
    """Apply per-section overrides on top of the defaults, field by field.

    Expects data that already passed :func:`validate_config`.
    """
    repos = tuple(
        RepoConfig(
            name=str(entry["name"]),
            path=str(entry["path"]),
            language=str(entry["language"]),
            role=str(entry.get("role") or ""),
        )
        for entry in raw.get("repos") or []
    )

    evolution_raw = _as_dict(raw.get("evolution"))
    defaults = EvolutionConfig()
    categories = _pick(evolution_raw, "categories")
    evolution = EvolutionConfig(
        aggressiveness=_or(_pick(evolution_raw, "aggressiveness"), defaults.aggressiveness),
        max_suggestions_per_session=_or(
            _pick(evolution_raw, "maxSuggestionsPerSession", "max_suggestions_per_session"),
            defaults.max_suggestions_per_session,
        ),
        categories=tuple(categories) if categories is not None else defaults.categories,
    )

    quality_raw = _as_dict(raw.get("quality"))
    quality_defaults = QualityConfig()
    quality = QualityConfig(
        block_on_failure=_or(
            _pick(quality_raw, "blockOnFailure", "block_on_failure"),
            quality_defaults.block_on_failure,
        ),
        require_tests_for_new_code=_or(
            _pick(quality_raw, "requireTestsForNewCode", "require_tests_for_new_code"),
            quality_defaults.require_tests_for_new_code,
        ),
        convention_strictness=_or(
            _pick(quality_raw, "conventionStrictness", "convention_strictness"),
            quality_defaults.convention_strictness,
        ),
    )

    context_raw = _as_dict(raw.get("context"))
    context_defaults = ContextConfig()
    context = ContextConfig(
        token_budget=_or(
            _pick(context_raw, "tokenBudget", "token_budget"), context_defaults.token_budget
        ),
        prioritize=_or(_pick(context_raw, "prioritize"), context_defaults.prioritize),
        include_recent_commits=_or(
            _pick(context_raw, "includeRecentCommits", "include_recent_commits"),
            context_defaults.include_recent_commits,
        ),
    )

    cache_raw = _as_dict(raw.get("cache"))
    cache_defaults = CacheConfig()
    directory = _pick(cache_raw, "directory")
    cache = CacheConfig(
        directory=Path(directory).expanduser() if directory else cache_defaults.directory,
        max_age_days=_or(
            _pick(cache_raw, "maxAgeDays", "max_age_days"), cache_defaults.max_age_days
        ),
    )

    return OmniLinkConfig(
        repos=repos, evolution=evolution, quality=quality, context=context, cache=cache
    )


def load_config(config_path: Path) -> OmniLinkConfig:
    """Load and validate configuration from disk."""
    config_file = resolve_config_path(config_path)
    if config_file is None or not config_file.is_file():
        raise ConfigError(f"No omnilink configuration found at {config_path}")

    try:
        text = config_file.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {config_file.name}: {exc}") from exc
    try:
        data = yaml.safe_load(text) if text.strip() else {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {config_file.name}: {exc}") from exc

    result = validate_config(data or {})
    if isinstance(result, InvalidConfig):
        details = "\n".join(f"  - {error}" for error in result.errors)
        raise ConfigError(f"Invalid omnilink config:\n{details}", result.errors)

    config = result.config
    directory = config.cache.directory
    if not directory.is_absolute():
        config = replace(
            config,
            cache=replace(config.cache, directory=(config_file.parent / directory).resolve()),
        )
    return config


def resolve_config_path(config_path: Path) -> Optional[Path]:
    """Return the config file for ``config_path`` (a file or a directory)."""
    config_path = config_path.expanduser()
    if config_path.is_dir():
        for name in CONFIG_FILENAMES:
            candidate = config_path / name
            if candidate.is_file():
                return candidate.resolve()
        return None
    return config_path.resolve()


def config_sha(config: OmniLinkConfig) -> str:
    """Short content hash of the active configuration."""
    payload = json.dumps(config.to_dict(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:CONFIG_SHA_LENGTH]


def _repo_errors(repos: object) -> List[str]:
    if not isinstance(repos, list) or not repos:
        return ["repos: must have at least 1 repo"]
    if len(repos) > MAX_REPOS:
        return [f"repos: maximum {MAX_REPOS} repos allowed"]
    errors: List[str] = []
    seen_names: set[str] = set()
    for index, repo in enumerate(repos):
        if not isinstance(repo, Mapping):
            errors.append(f"repos[{index}]: must be a mapping")
            continue
        for key in ("name", "path", "language"):
            if not repo.get(key):
                errors.append(f"repos[{index}]: missing {key}")
        name = repo.get("name")
        if isinstance(name, str) and name:
            if name in seen_names:
                errors.append(f"repos[{index}]: duplicate name '{name}'")
            seen_names.add(name)
    return errors


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _pick(section: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if section.get(key) is not None:
            return section[key]
    return None


def _or(value: Any, default: Any) -> Any:
    return default if value is None else value


def _is_int(value: Any, *, minimum: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= minimum


__all__ = [
    "CacheConfig",
    "ConfigError",
    "ConfigResult",
    "ContextConfig",
    "EvolutionConfig",
    "InvalidConfig",
    "OmniLinkConfig",
    "PRIORITY_POLICIES",
    "QualityConfig",
    "RepoConfig",
    "ValidConfig",
    "config_sha",
    "load_config",
    "merge_config",
    "resolve_config_path",
    "validate_config",
]
