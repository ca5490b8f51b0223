"""Shared per-session pipeline used by the batch reviewer and the session-end hook."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from recollect.config.logging import logger
from recollect.extract.base import Extractor
from recollect.memory.models import ExtractedMemory, StoreContext
from recollect.sessions.formatter import format_conversation
from recollect.sessions.parser import NormalizedConversation
from recollect.store.client import MemoryStoreClient


class SessionOutcome(str, Enum):
    """Terminal outcome of one session."""

    skipped_too_short = "skipped-too-short"
    skipped_empty_extraction = "skipped-empty-extraction"
    processed = "processed"
    error = "error"


@dataclass
class SessionResult:
    """What happened to one session; counts are never persisted."""

    path: str
    outcome: SessionOutcome
    turn_count: int = 0
    extracted: int = 0
    stored: int = 0
    failed: int = 0
    dry_run: bool = False
    error: str | None = None
    preview: list[ExtractedMemory] = field(default_factory=list)

    @property
    def handled(self) -> bool:
        """Return whether the session reached a state that should not be retried."""
        return self.outcome in {SessionOutcome.processed, SessionOutcome.skipped_empty_extraction}

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "outcome": self.outcome.value,
            "turn_count": self.turn_count,
            "extracted": self.extracted,
            "stored": self.stored,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "error": self.error,
            "preview": [item.model_dump(mode="json") for item in self.preview],
        }


async def run_pipeline(
    conversation: NormalizedConversation,
    *,
    label: str,
    min_turns: int,
    extractor: Extractor,
    store: MemoryStoreClient | None,
    context: StoreContext,
    dry_run: bool = False,
) -> SessionResult:
    """Gate, extract, and store one parsed conversation.

    Extraction and store-level exceptions other than per-memory store failures
    propagate; the caller decides whether they mark the session.
    """
    if conversation.turn_count < min_turns:
        logger.debug(f"Skipping {label} (only {conversation.turn_count} turns)")
        return SessionResult(path=label, outcome=SessionOutcome.skipped_too_short, turn_count=conversation.turn_count)

    conversation_text = format_conversation(conversation)
    logger.debug(f"Conversation length: {len(conversation_text)} chars")

    memories = await extractor.extract(conversation_text)
    logger.debug(f"Extracted {len(memories)} memories")
    result = SessionResult(
        path=label,
        outcome=SessionOutcome.processed,
        turn_count=conversation.turn_count,
        extracted=len(memories),
        dry_run=dry_run,
    )
    if not memories:
        result.outcome = SessionOutcome.skipped_empty_extraction
        return result

    if dry_run:
        logger.debug(f"Dry run: {len(memories)} memories not stored")
        result.preview = list(memories)
        return result

    if store is None:
        raise RuntimeError("store client required outside dry-run mode")
    outcome = await store.store_all(memories, context)
    result.stored = outcome.stored_count
    result.failed = outcome.failed_count
    return result
