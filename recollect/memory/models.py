"""Memory domain models shared by the extractor and the store client."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

DEFAULT_IMPORTANCE = 0.7
AUTO_EXTRACTED_TAG = "auto-extracted"


class MemoryType(str, Enum):
    """Memory categories the extraction prompt asks the model to use."""

    decision = "Decision"
    insight = "Insight"
    pattern = "Pattern"
    preference = "Preference"
    context = "Context"

    @classmethod
    def parse(cls, value: Any) -> "MemoryType | None":
        """Match a model-provided type label case-insensitively."""
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for item in cls:
            if item.value.lower() == wanted:
                return item
        return None


def _dedupe(values: list[str]) -> list[str]:
    """Trim and deduplicate string values, keeping first-seen order."""
    seen: list[str] = []
    for value in values:
        cleaned = value.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class ExtractedMemory(BaseModel):
    """One validated memory candidate produced by an extractor."""

    content: str = Field(min_length=1, description="One or two sentences of durable knowledge.")
    type: MemoryType | None = Field(default=None, description="Memory category; omitted when the model gave none we know.")
    importance: float = Field(default=DEFAULT_IMPORTANCE, ge=0.0, le=1.0)
    tags: list[str] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("content must not be blank")
        return text

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: list[str]) -> list[str]:
        return _dedupe(value)

    def preview_line(self) -> str:
        """Render the dry-run preview line for this memory."""
        label = self.type.value if self.type else "Memory"
        return f"[{label}] {self.content}"


@dataclass(frozen=True)
class StoreContext:
    """Provenance attached to every memory stored from one session or by hand."""

    source: str
    session_path: str | None = None
    session_id: str | None = None
    extracted_at: datetime | None = None
    auto_extracted: bool = True

    def provenance_tags(self) -> list[str]:
        """Return fixed tags appended to every stored memory."""
        if not self.auto_extracted:
            return [self.source]
        return [AUTO_EXTRACTED_TAG, self.source]

    def metadata(self) -> dict[str, str]:
        """Return the metadata object sent with each memory."""
        stamp = (self.extracted_at or datetime.now(timezone.utc)).isoformat()
        payload = {"source": self.source}
        payload["extracted_at" if self.auto_extracted else "stored_at"] = stamp
        if self.session_path:
            payload["session_file"] = self.session_path
        if self.session_id:
            payload["session_id"] = self.session_id
        return payload


@dataclass
class StoreOutcome:
    """Per-session store counters."""

    stored_count: int = 0
    failed_count: int = 0


class StoreResponse(BaseModel):
    """Success envelope returned by ``POST /memory``."""

    status: str = "success"
    memory_id: str | None = None
    type: str | None = None


class HealthStatus(BaseModel):
    """Payload returned by ``GET /health``."""

    status: str
    memory_count: int = 0


class RecallHit(BaseModel):
    """One ranked result returned by ``GET /recall``."""

    memory_id: str | None = None
    content: str = ""
    type: str | None = None
    importance: float | None = None
    tags: list[str] = Field(default_factory=list)
    score: float = 0.0
    match_type: str | None = None

    @classmethod
    def from_result(cls, result: dict[str, Any]) -> "RecallHit":
        """Flatten one ``{memory, score, match_type}`` result object."""
        memory = result.get("memory") if isinstance(result.get("memory"), dict) else {}
        return cls(
            memory_id=memory.get("id"),
            content=str(memory.get("content") or ""),
            type=memory.get("type"),
            importance=memory.get("importance"),
            tags=[str(tag) for tag in memory.get("tags") or []],
            score=float(result.get("score") or 0.0),
            match_type=result.get("match_type"),
        )
