"""Command-line interface for batch review, the session-end hook, and store access."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from pydantic import ValidationError

from recollect import __version__
from recollect.app.hooks import run_session_end_hook
from recollect.app.review import DEFAULT_WINDOW_HOURS, EXIT_FATAL, ReviewSummary, run_review
from recollect.config.logging import configure_logging, logger
from recollect.config.settings import get_config, get_config_sources
from recollect.errors import ConfigurationError, HealthCheckFailure, StoreFailure
from recollect.memory.models import (
    DEFAULT_IMPORTANCE,
    ExtractedMemory,
    HealthStatus,
    MemoryType,
    RecallHit,
    StoreContext,
    StoreResponse,
)
from recollect.store.client import MemoryStoreClient

MANUAL_SOURCE = "manual"


def _emit(message: object = "", *, file: Any | None = None) -> None:
    """Write one CLI output line to stdout or a provided file-like target."""
    target = file if file is not None else sys.stdout
    target.write(f"{message}\n")


def _hoist_global_json_flag(raw: list[str]) -> list[str]:
    """Allow ``--json`` before or after subcommands by normalizing argv order."""
    if "--json" not in raw:
        return raw
    return ["--json"] + [item for item in raw if item != "--json"]


def _parse_tags(raw: str | None) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def _emit_review_summary(summary: ReviewSummary) -> None:
    for result in summary.results:
        if not result.preview:
            continue
        _emit(f"DRY RUN - Would store from {result.path}:")
        for memory in result.preview:
            _emit(f"  {memory.preview_line()}")
            _emit(f"    Importance: {memory.importance}, Tags: {', '.join(memory.tags)}")
    _emit("Review summary:")
    _emit(f"- Sessions found: {summary.sessions_found}")
    _emit(f"- Sessions processed: {summary.sessions_processed}")
    _emit(f"- Memories extracted: {summary.memories_extracted}")
    if not summary.dry_run:
        _emit(f"- Memories stored: {summary.memories_stored}")
    if summary.sessions_failed:
        _emit(f"- Sessions failed: {summary.sessions_failed}")
    if summary.error:
        _emit(f"- Error: {summary.error}")


def _cmd_review(args: argparse.Namespace) -> int:
    """Run one batch review over recent transcripts and print the summary."""
    if args.verbose:
        configure_logging("DEBUG")
    if args.hours <= 0:
        _emit("--hours must be positive", file=sys.stderr)
        return 2
    code, summary = run_review(
        get_config(),
        hours=args.hours,
        dry_run=args.dry_run,
        session_path=args.session,
    )
    if args.json:
        _emit(json.dumps(summary.to_dict(), indent=2, ensure_ascii=True))
    else:
        _emit_review_summary(summary)
    return code


def _cmd_hook_session_end(args: argparse.Namespace) -> int:
    """Read a SessionEnd payload from stdin and extract memories from its transcript."""
    raw = sys.stdin.read()
    try:
        payload = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as exc:
        logger.warning(f"Ignoring malformed session-end payload: {exc}")
        return 0
    if not isinstance(payload, dict):
        logger.warning("Ignoring session-end payload that is not a JSON object")
        return 0
    return run_session_end_hook(payload, get_config())


async def _fetch_health() -> HealthStatus:
    async with MemoryStoreClient.from_config(get_config()) as client:
        return await client.health()


def _cmd_health(args: argparse.Namespace) -> int:
    """Check memory store connectivity."""
    try:
        health = asyncio.run(_fetch_health())
    except (ConfigurationError, HealthCheckFailure) as exc:
        if args.json:
            _emit(json.dumps({"status": "error", "error": str(exc)}, indent=2, ensure_ascii=True))
        else:
            _emit(f"Error: {exc}", file=sys.stderr)
        return EXIT_FATAL
    if args.json:
        _emit(json.dumps(health.model_dump(mode="json"), indent=2, ensure_ascii=True))
    else:
        _emit(f"Memory store: {health.status} ({health.memory_count} memories)")
    return 0


async def _fetch_recall(args: argparse.Namespace) -> list[RecallHit]:
    async with MemoryStoreClient.from_config(get_config()) as client:
        return await client.recall(
            args.query,
            limit=args.limit,
            tags=_parse_tags(args.tags),
            time_query=args.time_query,
        )


def _cmd_recall(args: argparse.Namespace) -> int:
    """Search stored memories and print matches."""
    try:
        hits = asyncio.run(_fetch_recall(args))
    except (ConfigurationError, StoreFailure) as exc:
        _emit(f"Error: {exc}", file=sys.stderr)
        return EXIT_FATAL
    if args.json:
        _emit(json.dumps([hit.model_dump(mode="json") for hit in hits], indent=2, ensure_ascii=True))
        return 0
    if not hits:
        _emit("No memories found matching your query.")
        return 0
    for index, hit in enumerate(hits, start=1):
        tags = f" [{', '.join(hit.tags)}]" if hit.tags else ""
        _emit(f"{index}. [{hit.type or 'Memory'}] {hit.content}{tags}")
        _emit(f"   score={hit.score:.3f} importance={hit.importance}")
    return 0


def _memory_type(raw: str) -> MemoryType:
    parsed = MemoryType.parse(raw)
    if parsed is None:
        choices = ", ".join(item.value for item in MemoryType)
        raise argparse.ArgumentTypeError(f"unknown memory type {raw!r} (choose from {choices})")
    return parsed


def _importance(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"importance must be a number, got {raw!r}") from None
    if not 0.0 <= value <= 1.0:
        raise argparse.ArgumentTypeError("importance must be between 0 and 1")
    return value


async def _submit_memory(memory: ExtractedMemory) -> StoreResponse:
    async with MemoryStoreClient.from_config(get_config()) as client:
        return await client.store(memory, StoreContext(source=MANUAL_SOURCE, auto_extracted=False))


def _cmd_store(args: argparse.Namespace) -> int:
    """Store one hand-written memory."""
    try:
        memory = ExtractedMemory(
            content=args.content,
            type=args.type,
            importance=args.importance,
            tags=_parse_tags(args.tags),
        )
    except ValidationError as exc:
        _emit(f"Error: invalid memory: {exc.errors()[0]['msg']}", file=sys.stderr)
        return 2
    try:
        response = asyncio.run(_submit_memory(memory))
    except (ConfigurationError, StoreFailure) as exc:
        if args.json:
            _emit(json.dumps({"status": "error", "error": str(exc)}, indent=2, ensure_ascii=True))
        else:
            _emit(f"Failed to store memory: {exc}", file=sys.stderr)
        return EXIT_FATAL
    if args.json:
        _emit(json.dumps(response.model_dump(mode="json"), indent=2, ensure_ascii=True))
        return 0
    _emit("Memory stored successfully.")
    _emit(f"ID: {response.memory_id}")
    _emit(f"Type: {response.type or 'default'}")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    """Print the resolved configuration with credentials masked."""
    payload = get_config().public_dict()
    payload["sources"] = get_config_sources()
    if args.json:
        _emit(json.dumps(payload, indent=2, ensure_ascii=True))
        return 0
    _emit("Configuration:")
    for key, value in payload.items():
        if key == "sources":
            continue
        _emit(f"- {key}: {value}")
    if payload["sources"]:
        _emit("Config files:")
        for source in payload["sources"]:
            _emit(f"- {source['source']}: {source['path']}")
    else:
        _emit("Config files: none (environment and defaults only)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with all subcommands."""
    parser = argparse.ArgumentParser(prog="recollect", description="Turn agent session transcripts into memories")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--json", action="store_true", help="Output JSON when supported")
    sub = parser.add_subparsers(dest="command")

    review = sub.add_parser("review", help="Extract memories from recent, unprocessed sessions")
    review.add_argument("--hours", type=float, default=DEFAULT_WINDOW_HOURS)
    review.add_argument("--dry-run", action="store_true", help="Preview extractions without storing or marking")
    review.add_argument("--session", help="Process one transcript file, bypassing discovery and the ledger")
    review.add_argument("--verbose", action="store_true")
    review.set_defaults(func=_cmd_review)

    hook = sub.add_parser("hook", help="Agent lifecycle hooks")
    hook_sub = hook.add_subparsers(dest="hook_command")
    session_end = hook_sub.add_parser("session-end", help="Handle a SessionEnd payload from stdin")
    session_end.set_defaults(func=_cmd_hook_session_end)

    health = sub.add_parser("health", help="Check memory store connectivity")
    health.set_defaults(func=_cmd_health)

    recall = sub.add_parser("recall", help="Search stored memories")
    recall.add_argument("query")
    recall.add_argument("--limit", type=int, default=5)
    recall.add_argument("--tags", help="Comma-separated tag filter")
    recall.add_argument("--time-query", help="Natural time filter, e.g. 'last week'")
    recall.set_defaults(func=_cmd_recall)

    store = sub.add_parser("store", help="Store one memory by hand")
    store.add_argument("content")
    store.add_argument("--type", type=_memory_type, help="Decision, Insight, Pattern, Preference, or Context")
    store.add_argument("--importance", type=_importance, default=DEFAULT_IMPORTANCE, help="Score between 0 and 1")
    store.add_argument("--tags", help="Comma-separated tags")
    store.set_defaults(func=_cmd_store)

    config = sub.add_parser("config", help="Show resolved configuration and the files it came from")
    config.set_defaults(func=_cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for CLI invocation with global flags and dispatch."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(_hoist_global_json_flag(list(argv if argv is not None else sys.argv[1:])))

    if not getattr(args, "command", None):
        parser.print_help()
        return 0

    if args.command == "hook" and not getattr(args, "hook_command", None):
        parser.parse_args([args.command, "--help"])
        return 0

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 2
    return int(handler(args))


if __name__ == "__main__":
    raise SystemExit(main())
