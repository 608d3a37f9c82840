# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagetagger CLI: tag pages and query the URL store.

Usage:
    pagetagger tag URL [--title TITLE] [--signals FILE] [--save]
    pagetagger ingest FILE [--no-append] [--tag] [--signals FILE]
    pagetagger list [--sort-by FIELD] [--asc] [--limit N] [--offset N]
    pagetagger get URL
    pagetagger by-domain DOMAIN | by-category CATEGORY | by-tag TAG
    pagetagger search QUERY
    pagetagger stats [--top N]
    pagetagger delete URL
    pagetagger clear --yes

Global options: ``--db PATH``, ``-v/--verbose``, ``--json-logs``.
Results are printed to stdout as JSON; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from . import __version__
from .config import TaggerConfig
from .errors import TaggerError
from .ingest import filter_pages, load_observations, pages_from_observations
from .logging_config import configure, get_logger
from .records import SORT_FIELDS, UrlObservation, UrlRecord
from .signals import StaticSignalSource
from .store_sqlite import SqliteUrlStore
from .tagger import ContentTagger

log = get_logger(__name__)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _records(records: list[UrlRecord]) -> list[dict]:
    return [r.to_dict() for r in records]


def _config(args: argparse.Namespace) -> TaggerConfig:
    config = TaggerConfig.from_env()
    if args.db:
        config = dataclasses.replace(config, db_path=Path(args.db))
    return config


def _tagger(args: argparse.Namespace, config: TaggerConfig) -> ContentTagger:
    source = StaticSignalSource.from_json(args.signals) if getattr(args, "signals", None) else None
    return ContentTagger(signal_source=source, config=config)


async def _with_store(config: TaggerConfig, fn: Callable[[SqliteUrlStore], Awaitable[Any]]) -> Any:
    store = await SqliteUrlStore.create(config.resolved_db_path)
    try:
        return await fn(store)
    finally:
        await store.close()


def _run_store(args: argparse.Namespace, fn: Callable[[SqliteUrlStore], Awaitable[Any]]) -> None:
    _emit(asyncio.run(_with_store(_config(args), fn)))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_tag(args: argparse.Namespace) -> None:
    """Classify one URL, optionally saving the result."""
    config = _config(args)
    tagger = _tagger(args, config)

    async def _run() -> dict:
        page = await tagger.tag_url(args.url, args.title or "")
        out = page.to_dict()
        if args.save:
            record = await _with_store(config, lambda s: s.save_url(UrlObservation.from_tagged(page)))
            out["record"] = record.to_dict()
        return out

    _emit(asyncio.run(_run()))


def cmd_ingest(args: argparse.Namespace) -> None:
    """Load observations from JSON (optionally tagging them first) and save them."""
    config = _config(args)
    intake = load_observations(args.file)
    observations = intake.observations
    summary: dict[str, Any] = {"read": intake.total}

    async def _run() -> dict:
        nonlocal observations
        if args.tag:
            filtered = filter_pages(pages_from_observations(observations))
            batch = await _tagger(args, config).tag_many(filtered.pages)
            observations = [UrlObservation.from_tagged(p) for p in batch.pages]
            summary["duplicates_removed"] = filtered.duplicates_removed
            summary["auth_pages_removed"] = filtered.auth_pages_removed
            summary["tag_errors"] = [dataclasses.asdict(e) for e in batch.errors]

        result = await _with_store(config, lambda s: s.save_urls(observations, append=not args.no_append))
        result.errors[:0] = intake.errors
        log.info("ingest_complete", saved=result.saved, updated=result.updated, errors=len(result.errors))
        return {**summary, **result.to_dict()}

    _emit(asyncio.run(_run()))


def cmd_list(args: argparse.Namespace) -> None:
    async def _run(store: SqliteUrlStore) -> list[dict]:
        records = await store.get_all_urls(
            sort_by=args.sort_by, descending=not args.asc, offset=args.offset, limit=args.limit
        )
        return _records(records)

    _run_store(args, _run)


def cmd_get(args: argparse.Namespace) -> None:
    async def _run(store: SqliteUrlStore) -> dict | None:
        record = await store.get_url(args.url)
        return record.to_dict() if record is not None else None

    _run_store(args, _run)


def cmd_by_domain(args: argparse.Namespace) -> None:
    async def _run(store: SqliteUrlStore) -> list[dict]:
        return _records(await store.get_urls_by_domain(args.domain))

    _run_store(args, _run)


def cmd_by_category(args: argparse.Namespace) -> None:
    async def _run(store: SqliteUrlStore) -> list[dict]:
        return _records(await store.get_urls_by_category(args.category))

    _run_store(args, _run)


def cmd_by_tag(args: argparse.Namespace) -> None:
    async def _run(store: SqliteUrlStore) -> list[dict]:
        return _records(await store.get_urls_by_tag(args.tag))

    _run_store(args, _run)


def cmd_search(args: argparse.Namespace) -> None:
    async def _run(store: SqliteUrlStore) -> list[dict]:
        return _records(await store.search_urls(args.query))

    _run_store(args, _run)


def cmd_stats(args: argparse.Namespace) -> None:
    top_n = args.top if args.top is not None else _config(args).top_n

    async def _run(store: SqliteUrlStore) -> dict:
        return (await store.get_stats(top_n)).to_dict()

    _run_store(args, _run)


def cmd_delete(args: argparse.Namespace) -> None:
    async def _run(store: SqliteUrlStore) -> dict:
        return {"url": args.url, "deleted": await store.delete_url(args.url)}

    _run_store(args, _run)


def cmd_clear(args: argparse.Namespace) -> None:
    if not args.yes:
        print("Error: clear deletes every stored URL; pass --yes to confirm.", file=sys.stderr)
        sys.exit(2)

    async def _run(store: SqliteUrlStore) -> dict:
        return {"deleted": await store.clear_all_urls()}

    _run_store(args, _run)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pagetagger", description="Tag web pages and query the URL store")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", type=str, metavar="PATH", help="SQLite database path (default: $PAGETAGGER_DB_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines on stderr")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_tag = subparsers.add_parser("tag", help="Classify a single URL")
    p_tag.add_argument("url")
    p_tag.add_argument("--title", type=str, default="")
    p_tag.add_argument("--signals", type=str, metavar="FILE", help="JSON object of page metadata keyed by URL")
    p_tag.add_argument("--save", action="store_true", help="Save the result to the store")

    p_ingest = subparsers.add_parser("ingest", help="Save observations from a JSON file")
    p_ingest.add_argument("file")
    p_ingest.add_argument("--no-append", action="store_true", help="Keep existing records untouched")
    p_ingest.add_argument("--tag", action="store_true", help="Filter and classify pages before saving")
    p_ingest.add_argument("--signals", type=str, metavar="FILE", help="Metadata for --tag, keyed by URL")

    p_list = subparsers.add_parser("list", help="List stored URLs")
    p_list.add_argument("--sort-by", type=str, default="last_seen", choices=sorted(SORT_FIELDS))
    p_list.add_argument("--asc", action="store_true", help="Ascending order (default: descending)")
    p_list.add_argument("--limit", type=int, default=None)
    p_list.add_argument("--offset", type=int, default=0)

    p_get = subparsers.add_parser("get", help="Show one stored URL")
    p_get.add_argument("url")

    p_domain = subparsers.add_parser("by-domain", help="URLs for a domain")
    p_domain.add_argument("domain")

    p_category = subparsers.add_parser("by-category", help="URLs in a category")
    p_category.add_argument("category")

    p_by_tag = subparsers.add_parser("by-tag", help="URLs carrying a tag")
    p_by_tag.add_argument("tag")

    p_search = subparsers.add_parser("search", help="Case-insensitive text search")
    p_search.add_argument("query")

    p_stats = subparsers.add_parser("stats", help="Aggregate statistics")
    p_stats.add_argument("--top", type=int, default=None, help="Leaderboard size (default: $PAGETAGGER_TOP_N)")

    p_delete = subparsers.add_parser("delete", help="Delete one stored URL")
    p_delete.add_argument("url")

    p_clear = subparsers.add_parser("clear", help="Delete every stored URL")
    p_clear.add_argument("--yes", action="store_true")

    return parser


COMMANDS: dict[str, Callable[[argparse.Namespace], None]] = {
    "tag": cmd_tag,
    "ingest": cmd_ingest,
    "list": cmd_list,
    "get": cmd_get,
    "by-domain": cmd_by_domain,
    "by-category": cmd_by_category,
    "by-tag": cmd_by_tag,
    "search": cmd_search,
    "stats": cmd_stats,
    "delete": cmd_delete,
    "clear": cmd_clear,
}


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        env_config = TaggerConfig.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    level = "DEBUG" if args.verbose else env_config.log_level
    configure(json_output=args.json_logs or env_config.log_json, level=level)

    try:
        COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except SystemExit:
        raise
    except (TaggerError, ValueError, OSError) as e:
        log.error("command_failed", command=args.command, error=str(e), exc_info=args.verbose)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
