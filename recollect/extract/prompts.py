"""Extraction prompt template shared by both extractor backends."""

from __future__ import annotations

from recollect.memory.models import MemoryType

_TYPE_LABELS = "/".join(item.value for item in MemoryType)


def build_extraction_prompt(conversation_text: str) -> str:
    """Embed an already-truncated conversation in the fixed extraction instructions."""
    return f"""Analyze this coding session and extract important learnings.

Extract ONLY:
- Decisions (architecture, tools, approaches)
- Insights (gotchas, bugs, findings)
- Patterns (preferences, style, habits)
- Context (project structure, constraints)

Skip routine tool usage and file reads.

For each memory provide: content (1-2 sentences), type ({_TYPE_LABELS}), importance (0.5-1.0), tags (array).

<conversation>
{conversation_text}
</conversation>

Respond with ONLY a JSON array. Example: [{{"content": "Chose PostgreSQL", "type": "Decision", "importance": 0.8, "tags": ["db"]}}]
If nothing worth remembering, respond with []"""
