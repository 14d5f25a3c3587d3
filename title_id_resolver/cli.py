"""Command-line interface for the title id resolver."""

from __future__ import annotations

import argparse
import json
import logging
import shlex
import sys
from pathlib import Path
from typing import Any

import pandas as pd

from .config import BATCH, MATCHING
from .errors import ResolverError, ValidationError
from .pipelines.context import ResolverContext, log_cache_stats
from .schema import BatchFilters, BatchResponse
from .utils import load_settings, read_id_list, write_csv


def setup_logging(log_file: Path | None) -> None:
    """Configure logging to the console (stderr) and, optionally, a file."""
    formatter = logging.Formatter(
        "%(asctime)s.%(msecs)03d - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    for handler in list(root_logger.handlers):
        if getattr(handler, "_resolver_cli", False):
            root_logger.removeHandler(handler)
            handler.close()

    # Console handler; stdout is reserved for JSON output.
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler._resolver_cli = True
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        file_handler._resolver_cli = True
        root_logger.addHandler(file_handler)

    # Silence verbose HTTP debug logs by default
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    if log_file is not None:
        logging.info(f"Logging to file: {log_file}")


def _setup_logging_from_args(args: argparse.Namespace) -> None:
    setup_logging(args.log_file)
    if args.debug:
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)
        for handler in root_logger.handlers:
            handler.setLevel(logging.DEBUG)
        logging.getLogger("urllib3").setLevel(logging.DEBUG)

    argv = " ".join(shlex.quote(a) for a in sys.argv)
    logging.info(f"Invocation: {argv}")


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
    sys.stdout.flush()


def _build_context(args: argparse.Namespace) -> ResolverContext:
    try:
        settings = load_settings(args.settings)
    except (FileNotFoundError, ValueError) as e:
        raise ValidationError(f"Invalid settings: {e}") from e
    ctx = ResolverContext.from_settings(settings)
    if args.catalog_fixture is not None:
        ctx.store.load_fixture(args.catalog_fixture)
    return ctx


def _parse_ids(args: argparse.Namespace) -> list[str]:
    if args.ids_file is not None:
        if not args.ids_file.exists():
            raise ValidationError(f"Ids file not found: {args.ids_file}")
        return read_id_list(args.ids_file, col=args.id_column)
    if args.ids:
        return [s.strip() for s in args.ids.split(",") if s.strip()]
    raise ValidationError("Provide --ids or --ids-file")


def batch_results_frame(response: BatchResponse) -> pd.DataFrame:
    rows = []
    for r in response.results:
        rows.append(
            {
                "id": r.id,
                "found": "true" if r.found else "false",
                "name": r.name or "",
                "match_strategy": r.match_strategy.value,
                "game_id": r.game.id if r.game else "",
                "game_title": r.game.title if r.game else "",
                "system_id": r.game.system_id if r.game else "",
                "listings": str(len(r.listings)),
            }
        )
    return pd.DataFrame(
        rows,
        columns=[
            "id",
            "found",
            "name",
            "match_strategy",
            "game_id",
            "game_title",
            "system_id",
            "listings",
        ],
    )


def _command_providers(ctx: ResolverContext, args: argparse.Namespace) -> None:
    _emit([p.to_dict() for p in ctx.list_providers()])


def _command_search(ctx: ResolverContext, args: argparse.Namespace) -> None:
    _emit(ctx.search(args.platform, args.query, args.max_results, min_score=args.min_score).to_dict())


def _command_best(ctx: ResolverContext, args: argparse.Namespace) -> None:
    best = ctx.best(args.platform, args.query)
    _emit(best.to_dict() if best else None)


def _command_stats(ctx: ResolverContext, args: argparse.Namespace) -> None:
    stats = ctx.stats(args.platform)
    _emit(stats.to_dict() if stats else None)


def _command_batch(ctx: ResolverContext, args: argparse.Namespace) -> None:
    ids = _parse_ids(args)
    filters = BatchFilters(
        emulator_name=args.emulator,
        max_listings_per_game=args.max_listings,
        show_nsfw=args.show_nsfw,
        minimal=args.minimal,
    )
    response = ctx.batch_resolve(ids, filters, platform_id=args.platform)
    if args.out is not None:
        write_csv(batch_results_frame(response), args.out)
        logging.info(f"✔ Batch results written: {args.out}")
    _emit(response.to_dict())


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    parser = argparse.ArgumentParser(
        description="Resolve Steam / Switch / 3DS title ids and game names to catalog entries"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_common = argparse.ArgumentParser(add_help=False)
    p_common.add_argument("--settings", type=Path, help="Settings YAML (default: built-in defaults)")
    p_common.add_argument(
        "--catalog-fixture",
        type=Path,
        help="YAML file with a `games:` list loaded into the catalog before running",
    )
    p_common.add_argument("--log-file", type=Path, help="Also write logs to this file")
    p_common.add_argument("--debug", action="store_true", help="Enable DEBUG logging (default: INFO)")

    p_providers = sub.add_parser("providers", help="List title id providers", parents=[p_common])
    p_providers.set_defaults(_fn=_command_providers)

    p_search = sub.add_parser("search", help="Fuzzy search a provider by game name", parents=[p_common])
    p_search.add_argument("platform", help="Provider id: switch, threeds or steam")
    p_search.add_argument("query", help="Game name")
    p_search.add_argument(
        "--max-results",
        type=int,
        default=MATCHING.default_max_results,
        help=f"Results to return, 1-{MATCHING.max_results_limit} "
        f"(default: {MATCHING.default_max_results})",
    )
    p_search.add_argument(
        "--min-score",
        type=int,
        default=None,
        help="Drop results scoring below this (default: the provider's threshold; 0 keeps all)",
    )
    p_search.set_defaults(_fn=_command_search)

    p_best = sub.add_parser("best", help="Best matching title id for a game name", parents=[p_common])
    p_best.add_argument("platform", help="Provider id: switch, threeds or steam")
    p_best.add_argument("query", help="Game name")
    p_best.set_defaults(_fn=_command_best)

    p_stats = sub.add_parser("stats", help="Provider dataset statistics", parents=[p_common])
    p_stats.add_argument("platform", help="Provider id: switch, threeds or steam")
    p_stats.set_defaults(_fn=_command_stats)

    p_batch = sub.add_parser(
        "batch", help="Resolve a batch of title ids to catalog games", parents=[p_common]
    )
    p_batch.add_argument("--platform", default="steam", help="Provider id (default: steam)")
    p_batch.add_argument("--ids", type=str, help="Comma-separated ids")
    p_batch.add_argument("--ids-file", type=Path, help="CSV (with header) or text file of ids")
    p_batch.add_argument("--id-column", default="id", help="CSV column holding ids (default: id)")
    p_batch.add_argument("--emulator", type=str, help="Only include listings for this emulator")
    p_batch.add_argument(
        "--max-listings",
        type=int,
        default=BATCH.default_listings_per_game,
        help=f"Listings per game, {BATCH.min_listings_per_game}-{BATCH.max_listings_per_game} "
        f"(default: {BATCH.default_listings_per_game})",
    )
    p_batch.add_argument(
        "--show-nsfw",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Include NSFW games (default: false)",
    )
    p_batch.add_argument(
        "--minimal",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Return only id/title/system for games (default: false)",
    )
    p_batch.add_argument("--out", type=Path, help="Also write results to this CSV")
    p_batch.set_defaults(_fn=_command_batch)

    ns = parser.parse_args(argv)
    _setup_logging_from_args(ns)

    ctx: ResolverContext | None = None
    try:
        ctx = _build_context(ns)
        ns._fn(ctx, ns)
    except ValidationError as e:
        logging.error(f"[CLI] {e.message}")
        _emit(e.to_dict())
        return 2
    except ResolverError as e:
        logging.error(f"[CLI] {e.code}: {e.message}")
        _emit(e.to_dict())
        return 1
    finally:
        if ctx is not None:
            log_cache_stats(ctx)
            ctx.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
