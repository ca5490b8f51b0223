"""Extractor protocol: conversation text in, validated memories out."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from recollect.memory.models import ExtractedMemory


@runtime_checkable
class Extractor(Protocol):
    """Capability shared by the batch (subprocess) and live (network) backends.

    ``extract`` truncates its input to the backend's character budget, returns
    an empty list when the model output is unusable, and raises
    ``ExtractionTimeout`` or ``ExtractionError`` only when the model call
    itself fails.
    """

    max_chars: int

    async def extract(self, conversation_text: str) -> list[ExtractedMemory]: ...


def truncate_conversation(conversation_text: str, max_chars: int) -> str:
    """Keep the first ``max_chars`` characters of the rendered conversation."""
    return conversation_text[:max_chars]
