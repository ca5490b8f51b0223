"""Batch reviewer: scan recent transcripts and turn each into stored memories once."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from recollect.app.pipeline import SessionOutcome, SessionResult, run_pipeline
from recollect.config.logging import logger
from recollect.config.settings import Config
from recollect.errors import ConfigurationError, HealthCheckFailure
from recollect.extract.base import Extractor
from recollect.extract.command import CommandExtractor
from recollect.ledger import ProcessedLedger
from recollect.memory.models import StoreContext
from recollect.sessions.discovery import SessionHandle, find_recent_sessions
from recollect.sessions.parser import parse_session_file
from recollect.store.client import MemoryStoreClient

EXIT_OK = 0
EXIT_FATAL = 1

REVIEW_SOURCE = "compound-review"
DEFAULT_WINDOW_HOURS = 24


@dataclass
class ReviewSummary:
    """Per-run totals reported at the end of a batch review."""

    hours: float
    dry_run: bool
    store_status: str | None = None
    store_memory_count: int | None = None
    sessions_found: int = 0
    sessions_pending: int = 0
    sessions_processed: int = 0
    sessions_skipped: int = 0
    sessions_failed: int = 0
    memories_extracted: int = 0
    memories_stored: int = 0
    memories_failed: int = 0
    error: str | None = None
    results: list[SessionResult] = field(default_factory=list)

    def record(self, result: SessionResult) -> None:
        """Fold one session result into the run totals."""
        self.results.append(result)
        self.sessions_processed += 1
        if result.outcome == SessionOutcome.error:
            self.sessions_failed += 1
        elif result.outcome == SessionOutcome.skipped_too_short:
            self.sessions_skipped += 1
        self.memories_extracted += result.extracted
        self.memories_stored += result.stored
        self.memories_failed += result.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "hours": self.hours,
            "dry_run": self.dry_run,
            "store_status": self.store_status,
            "store_memory_count": self.store_memory_count,
            "sessions_found": self.sessions_found,
            "sessions_pending": self.sessions_pending,
            "sessions_processed": self.sessions_processed,
            "sessions_skipped": self.sessions_skipped,
            "sessions_failed": self.sessions_failed,
            "memories_extracted": self.memories_extracted,
            "memories_stored": self.memories_stored,
            "memories_failed": self.memories_failed,
            "error": self.error,
            "results": [item.to_dict() for item in self.results],
        }


async def review_session(
    handle: SessionHandle,
    *,
    config: Config,
    extractor: Extractor,
    store: MemoryStoreClient | None,
    ledger: ProcessedLedger,
    dry_run: bool = False,
) -> SessionResult:
    """Run one transcript through the pipeline and mark it when fully handled.

    Any exception ends the session as ``error`` without marking it, so the
    next run retries it.
    """
    logger.info(f"Processing: {handle.name}")
    context = StoreContext(
        source=REVIEW_SOURCE,
        session_path=handle.path,
        extracted_at=datetime.now(timezone.utc),
    )
    try:
        conversation = parse_session_file(handle.path)
        result = await run_pipeline(
            conversation,
            label=handle.path,
            min_turns=config.min_turns,
            extractor=extractor,
            store=store,
            context=context,
            dry_run=dry_run,
        )
        if result.handled and not dry_run:
            ledger.mark(handle.path)
    except Exception as exc:
        logger.error(f"Error processing {handle.name}: {exc}")
        return SessionResult(path=handle.path, outcome=SessionOutcome.error, dry_run=dry_run, error=str(exc))

    if result.failed:
        logger.warning(f"{handle.name}: stored {result.stored}, failed {result.failed}")
    return result


def _select_sessions(
    config: Config,
    *,
    hours: float,
    session_path: str | None,
    ledger: ProcessedLedger,
    summary: ReviewSummary,
) -> list[SessionHandle]:
    """Discover candidates (or take the named one) and drop already processed paths."""
    if session_path:
        summary.sessions_found = 1
        summary.sessions_pending = 1
        return [SessionHandle.from_path(session_path)]

    sessions = find_recent_sessions(config.sessions_dir, hours)
    summary.sessions_found = len(sessions)
    logger.info(f"Found {len(sessions)} sessions from last {hours:g} hours")

    pending = [handle for handle in sessions if not ledger.has(handle.path)]
    summary.sessions_pending = len(pending)
    logger.info(f"{len(pending)} sessions not yet processed")
    return pending


async def run_review_async(
    config: Config,
    *,
    extractor: Extractor,
    store: MemoryStoreClient,
    ledger: ProcessedLedger,
    hours: float = DEFAULT_WINDOW_HOURS,
    dry_run: bool = False,
    session_path: str | None = None,
) -> tuple[int, ReviewSummary]:
    """Health-check the store, then process pending sessions strictly one at a time."""
    summary = ReviewSummary(hours=hours, dry_run=dry_run)
    try:
        health = await store.health()
    except HealthCheckFailure as exc:
        logger.error(str(exc))
        summary.error = str(exc)
        return EXIT_FATAL, summary
    summary.store_status = health.status
    summary.store_memory_count = health.memory_count
    logger.info(f"Memory store: {health.status} ({health.memory_count} memories)")

    pending = _select_sessions(config, hours=hours, session_path=session_path, ledger=ledger, summary=summary)
    if not pending:
        logger.info("Nothing to process")
        return EXIT_OK, summary

    for handle in pending:
        result = await review_session(
            handle,
            config=config,
            extractor=extractor,
            store=None if dry_run else store,
            ledger=ledger,
            dry_run=dry_run,
        )
        summary.record(result)

    logger.info("=== Summary ===")
    logger.info(f"Sessions processed: {summary.sessions_processed}")
    logger.info(f"Memories extracted: {summary.memories_extracted}")
    if not dry_run:
        logger.info(f"Memories stored: {summary.memories_stored}")
    return EXIT_OK, summary


async def _run_with_owned_store(config: Config, **kwargs: Any) -> tuple[int, ReviewSummary]:
    async with MemoryStoreClient.from_config(config) as store:
        return await run_review_async(config, store=store, **kwargs)


def run_review(
    config: Config,
    *,
    hours: float = DEFAULT_WINDOW_HOURS,
    dry_run: bool = False,
    session_path: str | Path | None = None,
    extractor: Extractor | None = None,
    store: MemoryStoreClient | None = None,
    ledger: ProcessedLedger | None = None,
) -> tuple[int, ReviewSummary]:
    """Run one batch review synchronously and return ``(exit_code, summary)``.

    Missing credentials or a missing extraction command end the run before the
    store is contacted.
    """
    summary = ReviewSummary(hours=hours, dry_run=dry_run)
    try:
        config.require_store_token()
        if extractor is None:
            command_extractor = CommandExtractor.from_config(config)
            command_extractor.check_available()
            extractor = command_extractor
    except ConfigurationError as exc:
        logger.error(f"Error: {exc}")
        summary.error = str(exc)
        return EXIT_FATAL, summary

    kwargs: dict[str, Any] = {
        "extractor": extractor,
        "ledger": ledger or ProcessedLedger(config.ledger_path, dry_run=dry_run),
        "hours": hours,
        "dry_run": dry_run,
        "session_path": str(session_path) if session_path else None,
    }
    logger.info("=== Compound Review ===")
    if store is not None:
        return asyncio.run(run_review_async(config, store=store, **kwargs))
    return asyncio.run(_run_with_owned_store(config, **kwargs))
