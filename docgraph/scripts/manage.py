#!/usr/bin/env python3
"""Batch jobs and local server for docgraph.

Usage:
  python -m docgraph.scripts.manage index
  python -m docgraph.scripts.manage index --root tasks --root docs --no-references
  python -m docgraph.scripts.manage session-logs
  python -m docgraph.scripts.manage references
  python -m docgraph.scripts.manage prune --keep 10 --delete-files
  python -m docgraph.scripts.manage search "websocket tests" --json
  python -m docgraph.scripts.manage serve
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any

from docgraph import config
from docgraph.db import connection, migrations, sync_engine
from docgraph.services.search import InvalidQueryError, SearchEngine


def _resolve(raw: str) -> Path:
    path = Path(raw).expanduser()
    return path if path.is_absolute() else config.CONTENT_ROOT / path


def _print_stats(stats: dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(stats, indent=2, default=str))
        return
    for key, value in stats.items():
        if key == "failures":
            for failure in value:
                print(f"  failed: {failure['path']}: {failure['error']}")
            continue
        print(f"{key}: {value}")


async def _run(args: argparse.Namespace) -> int:
    db = await connection.open_connection()
    try:
        await migrations.run_migrations(db)
        engine = sync_engine.SyncEngine(db)

        if args.command == "index":
            roots = [_resolve(raw) for raw in args.root] if args.root else None
            deadline = time.monotonic() + args.deadline if args.deadline else None
            stats = await engine.index_roots(
                roots,
                trigger="cli",
                rebuild_references=not args.no_references,
                deadline=deadline,
            )
            _print_stats(stats, args.json)
            return 1 if stats.get("failed") and args.strict else 0

        if args.command == "session-logs":
            stats = await engine.index_session_logs(_resolve(args.root) if args.root else None, trigger="cli")
            _print_stats(stats, args.json)
            return 0

        if args.command == "references":
            stats = await engine.rebuild_references(trigger="cli")
            _print_stats(stats, args.json)
            return 0

        if args.command == "prune":
            stats = await engine.prune_session_logs(args.keep, delete_files=args.delete_files, trigger="cli")
            _print_stats(stats, args.json)
            return 0

        if args.command == "search":
            try:
                results = await SearchEngine(db).search(args.query, args.limit, match_all=not args.any)
            except InvalidQueryError as exc:
                print(f"Invalid query: {exc}")
                return 2
            if args.json:
                print(json.dumps([r.model_dump() for r in results], indent=2))
                return 0
            for idx, result in enumerate(results, start=1):
                print(f"{idx:02d}. [{result.rank:.3f}] {result.title} ({result.path})")
                if result.excerpt:
                    print(f"    {result.excerpt}")
            return 0
    finally:
        await connection.close_connection(db)

    return 1


def main() -> int:
    parser = argparse.ArgumentParser(prog="docgraph")
    parser.add_argument("--json", action="store_true", help="Print machine-readable output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", help="Index HTML documents under the configured roots")
    index_parser.add_argument("--root", action="append", default=[], help="Root to index (repeatable)")
    index_parser.add_argument("--no-references", action="store_true", help="Skip reference inference")
    index_parser.add_argument("--deadline", type=float, default=0.0, help="Stop after this many seconds")
    index_parser.add_argument("--strict", action="store_true", help="Exit non-zero when any file fails")

    logs_parser = subparsers.add_parser("session-logs", help="Ingest YYYY/MM/DD.html session logs")
    logs_parser.add_argument("--root", default="", help="Session log directory")

    subparsers.add_parser("references", help="Recompute stored references")

    prune_parser = subparsers.add_parser("prune", help="Keep only the newest session logs")
    prune_parser.add_argument("--keep", type=int, default=config.SESSION_LOG_RETENTION)
    prune_parser.add_argument("--delete-files", action="store_true", help="Also delete pruned source files")

    search_parser = subparsers.add_parser("search", help="Search indexed documents")
    search_parser.add_argument("query")
    search_parser.add_argument("--limit", type=int, default=config.SEARCH_DEFAULT_LIMIT)
    search_parser.add_argument("--any", action="store_true", help="Match any word instead of all")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=config.HOST)
    serve_parser.add_argument("--port", type=int, default=config.PORT)

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("docgraph.main:app", host=args.host, port=args.port)
        return 0

    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
