"""Parse JSONL session transcripts into a normalized user/assistant conversation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Literal

from recollect.errors import TranscriptParseError

MAX_ENTRY_CHARS = 2000
CONVERSATION_ROLES = ("user", "assistant")

# Claude Code writes one record per message with the role as the record type.
_MESSAGE_RECORD_TYPES = {"message", "user", "assistant"}

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ConversationEntry:
    """One user or assistant message, truncated to ``MAX_ENTRY_CHARS``."""

    role: Role
    text: str


@dataclass
class NormalizedConversation:
    """Ordered conversation entries plus the number of user turns."""

    entries: list[ConversationEntry] = field(default_factory=list)
    turn_count: int = 0

    def __len__(self) -> int:
        return len(self.entries)


def _decode_line(line: str) -> dict[str, Any]:
    """Decode one transcript line into a record mapping."""
    try:
        record = json.loads(line)
    except json.JSONDecodeError as exc:
        raise TranscriptParseError(f"invalid_json_line:{exc.msg}") from exc
    if not isinstance(record, dict):
        raise TranscriptParseError("record_not_object")
    return record


def _content_text(content: Any) -> str:
    """Return message text from string content or ``text`` content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            block["text"]
            for block in content
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str) and block["text"]
        )
    return ""


def _entry_from_record(record: dict[str, Any]) -> ConversationEntry | None:
    """Build one conversation entry from a message record, or ``None`` when it does not qualify."""
    if record.get("type") not in _MESSAGE_RECORD_TYPES:
        return None
    message = record.get("message")
    if not isinstance(message, dict):
        return None
    role = message.get("role")
    if role not in CONVERSATION_ROLES:
        return None
    text = _content_text(message.get("content"))
    if not text.strip():
        return None
    return ConversationEntry(role=role, text=text[:MAX_ENTRY_CHARS])


def parse_records(records: Iterable[Any]) -> NormalizedConversation:
    """Normalize already-decoded transcript records, e.g. an in-memory session snapshot."""
    conversation = NormalizedConversation()
    for record in records:
        if not isinstance(record, dict):
            continue
        entry = _entry_from_record(record)
        if entry is None:
            continue
        if entry.role == "user":
            conversation.turn_count += 1
        conversation.entries.append(entry)
    return conversation


def _iter_records(lines: Iterable[str]) -> Iterable[dict[str, Any]]:
    """Yield decodable records, skipping blank and corrupt lines."""
    for line in lines:
        if not line.strip():
            continue
        try:
            yield _decode_line(line)
        except TranscriptParseError:
            continue


def parse_transcript(lines: str | Iterable[str]) -> NormalizedConversation:
    """Parse raw transcript text (or its lines) into a normalized conversation."""
    if isinstance(lines, str):
        lines = lines.split("\n")
    return parse_records(_iter_records(lines))


def parse_session_file(path: str | Path) -> NormalizedConversation:
    """Read and parse one transcript file from disk."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return parse_transcript(text)
