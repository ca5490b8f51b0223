"""Transcript discovery, parsing, and rendering."""

from recollect.sessions.discovery import ARTIFACT_DIR_NAME, SessionHandle, find_recent_sessions
from recollect.sessions.formatter import format_conversation
from recollect.sessions.parser import (
    MAX_ENTRY_CHARS,
    ConversationEntry,
    NormalizedConversation,
    parse_records,
    parse_session_file,
    parse_transcript,
)

__all__ = [
    "ARTIFACT_DIR_NAME",
    "SessionHandle",
    "find_recent_sessions",
    "format_conversation",
    "MAX_ENTRY_CHARS",
    "ConversationEntry",
    "NormalizedConversation",
    "parse_records",
    "parse_session_file",
    "parse_transcript",
]
