"""omnilink: cross-repo ecosystem digests built from scanner manifests."""

from .config import ConfigError, OmniLinkConfig, load_config
from .context import ContextResult, build_context
from .grapher import build_ecosystem_graph
from .models import EcosystemDigest, EcosystemGraph, ManifestError, RepoManifest
from .pipeline import Pipeline

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "ContextResult",
    "EcosystemDigest",
    "EcosystemGraph",
    "ManifestError",
    "OmniLinkConfig",
    "Pipeline",
    "RepoManifest",
    "build_context",
    "build_ecosystem_graph",
    "load_config",
]
