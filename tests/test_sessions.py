"""Transcript discovery, parsing, and formatting tests."""

from __future__ import annotations

import json
import os
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from recollect.sessions import (
    MAX_ENTRY_CHARS,
    SessionHandle,
    find_recent_sessions,
    format_conversation,
    parse_records,
    parse_session_file,
    parse_transcript,
)
from tests.helpers import conversation_records, message_record, write_transcript


def test_parser_counts_user_turns_and_keeps_order() -> None:
    conversation = parse_records(conversation_records(3, replies=2))
    assert conversation.turn_count == 3
    assert [entry.role for entry in conversation.entries] == ["user", "assistant", "user", "assistant", "user"]
    assert conversation.turn_count <= len(conversation)


def test_parser_truncates_long_messages_to_prefix() -> None:
    text = "x" * 4000 + "y" * 1000
    conversation = parse_records([message_record("user", text)])
    assert len(conversation.entries[0].text) == MAX_ENTRY_CHARS
    assert conversation.entries[0].text == text[:MAX_ENTRY_CHARS]


def test_parser_skips_corrupt_and_irrelevant_lines() -> None:
    lines = [
        json.dumps({"type": "session", "id": "abc"}),
        "{not json",
        "",
        json.dumps(["array", "record"]),
        json.dumps(message_record("user", "hello")),
        json.dumps({"type": "message", "message": {"role": "toolResult", "content": "ignored"}}),
        json.dumps({"type": "message", "message": {"role": "assistant", "content": [{"type": "thinking", "thinking": "hm"}]}}),
        json.dumps(message_record("assistant", "hi there")),
    ]
    conversation = parse_transcript("\n".join(lines))
    assert [(entry.role, entry.text) for entry in conversation.entries] == [
        ("user", "hello"),
        ("assistant", "hi there"),
    ]
    assert conversation.turn_count == 1


def test_parser_joins_text_blocks_and_accepts_string_content() -> None:
    records = [
        {
            "type": "message",
            "message": {
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "first"},
                    {"type": "toolCall", "name": "bash"},
                    {"type": "text", "text": "second"},
                ],
            },
        },
        {"type": "user", "message": {"role": "user", "content": "plain string"}},
    ]
    conversation = parse_records(records)
    assert conversation.entries[0].text == "first\nsecond"
    assert conversation.entries[1].text == "plain string"
    assert conversation.turn_count == 1


def test_parse_session_file_reads_jsonl(tmp_path: Path) -> None:
    path = write_transcript(tmp_path / "s.jsonl", conversation_records(2))
    conversation = parse_session_file(path)
    assert conversation.turn_count == 2
    assert len(conversation) == 4


def test_formatter_renders_role_blocks() -> None:
    conversation = parse_records([message_record("user", "Why?"), message_record("assistant", "Because.")])
    assert format_conversation(conversation) == "USER: Why?\n\nASSISTANT: Because."


def test_formatter_empty_conversation_is_empty_text() -> None:
    assert format_conversation(parse_records([])) == ""


def test_discovery_filters_by_window_and_orders_newest_first(tmp_path: Path) -> None:
    now = time.time()
    root = tmp_path / "sessions"
    old = write_transcript(root / "proj" / "old.jsonl", [], mtime=now - 48 * 3600)
    recent = write_transcript(root / "proj" / "recent.jsonl", [], mtime=now - 3600)
    newest = write_transcript(root / "other" / "deep" / "newest.jsonl", [], mtime=now - 60)
    write_transcript(root / "proj" / "notes.txt", [], mtime=now - 60)

    found = find_recent_sessions(root, 24, now=datetime.fromtimestamp(now, tz=timezone.utc))

    assert [handle.path for handle in found] == [str(newest), str(recent)]
    assert str(old) not in {handle.path for handle in found}
    assert found[0].name == "newest.jsonl"


def test_discovery_skips_subagent_artifacts(tmp_path: Path) -> None:
    root = tmp_path / "sessions"
    write_transcript(root / "proj" / "subagent-artifacts" / "child.jsonl", [])
    kept = write_transcript(root / "proj" / "main.jsonl", [])
    found = find_recent_sessions(root, 1, now=datetime.now(timezone.utc).replace(microsecond=999999))
    assert [handle.path for handle in found] == [str(kept)]


@pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
def test_discovery_does_not_follow_directory_symlinks(tmp_path: Path) -> None:
    root = tmp_path / "sessions"
    project = root / "proj"
    kept = write_transcript(project / "s.jsonl", [])
    os.symlink(project, project / "loop")
    os.symlink(project, root / "alias")
    found = find_recent_sessions(root, 1, now=datetime.fromtimestamp(time.time() + 60, tz=timezone.utc))
    assert [handle.path for handle in found] == [str(kept)]


def test_discovery_missing_root_is_empty(tmp_path: Path) -> None:
    assert find_recent_sessions(tmp_path / "missing", 24) == []


@pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="permission bits not enforced")
def test_discovery_skips_unreadable_directories(tmp_path: Path) -> None:
    root = tmp_path / "sessions"
    locked = root / "locked"
    write_transcript(locked / "hidden.jsonl", [])
    visible = write_transcript(root / "open" / "visible.jsonl", [])
    locked.chmod(0)
    try:
        found = find_recent_sessions(root, 1)
    finally:
        locked.chmod(0o755)
    assert [handle.path for handle in found] == [str(visible)]


def test_session_handle_from_path_keeps_given_string(tmp_path: Path) -> None:
    path = write_transcript(tmp_path / "one.jsonl", [])
    handle = SessionHandle.from_path(str(path))
    assert handle.path == str(path)
    assert handle.last_modified.tzinfo is not None

    missing = SessionHandle.from_path(tmp_path / "nope.jsonl")
    assert missing.last_modified == datetime.fromtimestamp(0, tz=timezone.utc)
