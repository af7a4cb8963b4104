"""Context builder: evolution analysis -> prune -> digest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from ..config import OmniLinkConfig
from ..evolution import EvolutionAnalyzer, analyze_evolution
from ..logging import get_logger
from ..models import EcosystemDigest, EcosystemGraph, EvolutionSuggestion
from .digest import format_digest
from .pruner import PrunedContext, estimate_tokens, prune_to_token_budget

logger = get_logger("context")


@dataclass
class ContextResult:
    """Everything one context build produced."""

    digest: EcosystemDigest
    markdown: str
    pruned: PrunedContext
    evolution: List[EvolutionSuggestion]


def build_context(
    graph: EcosystemGraph,
    config: OmniLinkConfig,
    evolution_analyzer: Optional[EvolutionAnalyzer] = None,
) -> ContextResult:
    """Produce the digest for ``graph`` within the configured token budget.

    Evolution analysis always runs on the full graph before pruning, and the
    unpruned manifests are handed to the renderer for commit history; only
    structural sections reflect the pruned graph.
    """
    analyzer = evolution_analyzer or analyze_evolution
    evolution = list(analyzer(graph, config))
    original_repos = list(graph.repos)

    pruned = prune_to_token_budget(
        graph, config.context.token_budget, config.context.prioritize
    )
    if pruned.dropped_items:
        logger.info(
            "Dropped %d items to fit the %d token budget",
            len(pruned.dropped_items),
            config.context.token_budget,
        )

    digest, markdown = format_digest(
        pruned.graph,
        config,
        evolution_opportunities=evolution,
        original_repos=original_repos,
    )
    return ContextResult(digest=digest, markdown=markdown, pruned=pruned, evolution=evolution)


__all__ = [
    "ContextResult",
    "PrunedContext",
    "build_context",
    "estimate_tokens",
    "format_digest",
    "prune_to_token_budget",
]
