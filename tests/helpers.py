"""Shared test utilities for configuration, transcripts, and fake collaborators."""

from __future__ import annotations

import io
import json
import os
from contextlib import redirect_stdout
from pathlib import Path
from typing import Any, Callable

import httpx

from recollect.config.settings import Config
from recollect.memory.models import ExtractedMemory
from recollect.store.client import MemoryStoreClient


def make_config(base: Path, **overrides: Any) -> Config:
    """Build a deterministic Config object rooted at ``base`` for tests."""
    values: dict[str, Any] = dict(
        store_url="http://automem.test",
        store_token="test-token",
        store_timeout=5.0,
        auto_extract=True,
        min_turns=3,
        sessions_dir=base / "sessions",
        ledger_path=base / "processed-sessions.log",
        extract_command="extract-memories @{prompt_file}",
        batch_max_chars=15000,
        batch_timeout=90.0,
        live_max_chars=30000,
        live_timeout=60.0,
        lm_provider="ollama",
        lm_model="qwen3:8b",
    )
    values.update(overrides)
    return Config(**values)


def message_record(role: str, text: str) -> dict[str, Any]:
    return {"type": "message", "message": {"role": role, "content": [{"type": "text", "text": text}]}}


def conversation_records(turns: int, *, replies: int | None = None) -> list[dict[str, Any]]:
    """Return ``turns`` user messages interleaved with assistant replies."""
    records: list[dict[str, Any]] = [{"type": "session", "id": "s-1"}]
    reply_count = turns if replies is None else replies
    for index in range(max(turns, reply_count)):
        if index < turns:
            records.append(message_record("user", f"question {index}"))
        if index < reply_count:
            records.append(message_record("assistant", f"answer {index}"))
    return records


def write_transcript(path: Path, records: list[dict[str, Any]], *, mtime: float | None = None) -> Path:
    """Write records as JSONL and optionally pin the file's modification time."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(json.dumps(record) for record in records) + "\n", encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


class StubExtractor:
    """Extractor that returns a fixed list and records every input it saw."""

    def __init__(self, memories: list[ExtractedMemory] | None = None, *, error: Exception | None = None) -> None:
        self.max_chars = 15000
        self.memories = memories or []
        self.error = error
        self.calls: list[str] = []

    async def extract(self, conversation_text: str) -> list[ExtractedMemory]:
        self.calls.append(conversation_text)
        if self.error is not None:
            raise self.error
        return list(self.memories)


def sample_memories(count: int = 2) -> list[ExtractedMemory]:
    return [
        ExtractedMemory(content=f"Memory number {index}", importance=0.8, tags=["topic"])
        for index in range(count)
    ]


class FakeStore:
    """In-memory stand-in for the store service behind ``httpx.MockTransport``."""

    def __init__(
        self,
        *,
        memory_count: int = 42,
        health_status: int = 200,
        fail_on: set[int] | None = None,
        recall_results: list[dict[str, Any]] | None = None,
    ) -> None:
        self.memory_count = memory_count
        self.health_status = health_status
        self.fail_on = fail_on or set()
        self.recall_results = recall_results or []
        self.stored: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self._post_count = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/health":
            if self.health_status != 200:
                return httpx.Response(self.health_status, text="down")
            return httpx.Response(200, json={"status": "healthy", "memory_count": self.memory_count})
        if request.url.path == "/memory" and request.method == "POST":
            self._post_count += 1
            if self._post_count in self.fail_on:
                return httpx.Response(500, text="boom")
            body = json.loads(request.content)
            self.stored.append(body)
            return httpx.Response(
                200,
                json={"status": "success", "memory_id": f"m-{self._post_count}", "type": body.get("type")},
            )
        if request.url.path == "/recall":
            return httpx.Response(
                200,
                json={"status": "success", "results": self.recall_results, "count": len(self.recall_results)},
            )
        return httpx.Response(404, text="not found")

    def client(self, config: Config) -> MemoryStoreClient:
        return MemoryStoreClient.from_config(config, transport=httpx.MockTransport(self.handler))

    def patch_factory(self) -> Callable[..., MemoryStoreClient]:
        """Return a ``from_config`` replacement that routes through this fake."""
        fake = self

        def _from_config(config: Config, *, transport: Any = None) -> MemoryStoreClient:
            return MemoryStoreClient(
                config.store_url,
                config.require_store_token(),
                timeout=config.store_timeout,
                transport=transport or httpx.MockTransport(fake.handler),
            )

        return _from_config


def run_cli(args: list[str]) -> tuple[int, str]:
    """Run CLI command and return ``(exit_code, stdout_text)``."""
    from recollect.app import cli

    out = io.StringIO()
    with redirect_stdout(out):
        code = cli.main(args)
    return code, out.getvalue()


def run_cli_json(args: list[str]) -> tuple[int, Any]:
    """Run CLI command and parse stdout JSON payload."""
    code, output = run_cli(args)
    return code, json.loads(output)
