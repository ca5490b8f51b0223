"""Render a normalized conversation as plain text for the extraction prompt."""

from __future__ import annotations

from recollect.sessions.parser import NormalizedConversation


def format_conversation(conversation: NormalizedConversation) -> str:
    """Join entries as ``ROLE: text`` blocks separated by a blank line.

    Total size is not capped here; each extractor truncates to its own budget.
    """
    return "\n\n".join(f"{entry.role.upper()}: {entry.text}" for entry in conversation.entries)
