"""CLI entrypoints for omnilink commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import ConfigError, OmniLinkConfig, load_config
from .logging import configure_logging
from .models import ManifestError
from .pipeline import Pipeline
from .stores import CacheRoot, invalidate_repo, prune_old


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    kwargs["default"] = argparse.SUPPRESS if suppress_default else False
    parser.add_argument("-v", "--verbose", **kwargs)


def _non_negative_days(value: str) -> float:
    try:
        days = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid number of days: {value!r}") from exc
    if days < 0:
        raise argparse.ArgumentTypeError("must be a non-negative number of days")
    return days


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=".",
        help="Config file or directory holding .omnilink.yml / .omnilink.json (defaults to cwd).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="omnilink",
        description="Summarise API contracts and shared types across related repositories.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    digest_parser = subparsers.add_parser(
        "digest",
        help="Build the ecosystem digest from scanner manifests.",
    )
    _add_verbose_option(digest_parser, suppress_default=True)
    _add_config_option(digest_parser)
    digest_parser.add_argument(
        "--manifests",
        required=True,
        help="Directory holding one <repo name>.json manifest per configured repo.",
    )
    digest_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the structured digest as JSON instead of markdown.",
    )
    digest_parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Neither read nor write the manifest cache for this run.",
    )

    cache_parser = subparsers.add_parser("cache", help="Maintain the scan cache.")
    cache_commands = cache_parser.add_subparsers(dest="cache_command", required=True)

    prune_parser = cache_commands.add_parser(
        "prune", help="Remove cache entries older than the configured max age."
    )
    _add_verbose_option(prune_parser, suppress_default=True)
    _add_config_option(prune_parser)
    prune_parser.add_argument(
        "--max-age-days",
        type=_non_negative_days,
        default=None,
        help="Override cache.maxAgeDays from the configuration.",
    )

    invalidate_parser = cache_commands.add_parser(
        "invalidate", help="Drop every cached entry for one repo."
    )
    _add_verbose_option(invalidate_parser, suppress_default=True)
    _add_config_option(invalidate_parser)
    invalidate_parser.add_argument("repo", help="Repository name as configured.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for omnilink commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    as_json = bool(getattr(args, "json", False))
    configure_logging(verbose=bool(args.verbose), quiet=as_json)

    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    if args.command == "digest":
        _run_digest(parser, config, args, as_json=as_json)
    elif args.command == "cache":
        cache_root = CacheRoot(config.cache.directory)
        if args.cache_command == "prune":
            max_age = (
                args.max_age_days if args.max_age_days is not None else config.cache.max_age_days
            )
            removed = prune_old(cache_root, max_age)
            print(f"Removed {removed} cache entries older than {max_age:g} days")
        else:
            try:
                invalidate_repo(cache_root, args.repo)
            except ValueError as exc:
                parser.exit(1, f"omnilink cache invalidate failed: {exc}\n")
            print(f"Cleared cached data for {args.repo}")
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_digest(
    parser: argparse.ArgumentParser,
    config: OmniLinkConfig,
    args: argparse.Namespace,
    *,
    as_json: bool,
) -> None:
    pipeline = Pipeline(config, use_cache=not bool(args.no_cache))
    try:
        result = pipeline.run(Path(args.manifests))
    except ManifestError as exc:
        parser.exit(1, f"omnilink digest failed: {exc}\n")
    if as_json:
        print(json.dumps(result.digest.to_dict(), indent=2))
    else:
        sys.stdout.write(result.markdown)


if __name__ == "__main__":
    main(sys.argv[1:])
