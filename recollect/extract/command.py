"""Batch extractor that shells out to a local agent CLI with a temp-file prompt."""

from __future__ import annotations

import asyncio
import os
import shlex
import shutil
import tempfile
from pathlib import Path

from recollect.config.logging import logger
from recollect.config.settings import Config
from recollect.errors import ConfigurationError, ExtractionError, ExtractionTimeout
from recollect.extract.base import truncate_conversation
from recollect.extract.prompts import build_extraction_prompt
from recollect.extract.response import parse_extraction_response
from recollect.memory.models import ExtractedMemory

MAX_OUTPUT_BYTES = 10 * 1024 * 1024


class CommandExtractor:
    """Run the configured CLI once per conversation and parse its stdout."""

    def __init__(
        self,
        command: str,
        *,
        max_chars: int = 15000,
        timeout_seconds: float = 90.0,
    ) -> None:
        self.command = command
        self.max_chars = max_chars
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: Config) -> "CommandExtractor":
        """Build the batch extractor from configured command and budgets."""
        return cls(
            config.extract_command,
            max_chars=config.batch_max_chars,
            timeout_seconds=config.batch_timeout,
        )

    def argv_for(self, prompt_file: Path) -> list[str]:
        """Return the command line for one prompt file."""
        return [part.replace("{prompt_file}", str(prompt_file)) for part in shlex.split(self.command)]

    def check_available(self) -> str:
        """Resolve the command executable or fail at startup."""
        argv = self.argv_for(Path("prompt.txt"))
        if not argv:
            raise ConfigurationError("RECOLLECT_EXTRACT_COMMAND is empty")
        resolved = shutil.which(argv[0])
        if resolved is None:
            raise ConfigurationError(f"Extraction command not found: {argv[0]}")
        return resolved

    async def _run(self, argv: list[str]) -> str:
        """Run one subprocess under the hard timeout, killing it on expiry."""
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ExtractionTimeout(self.timeout_seconds) from None
        if process.returncode != 0:
            detail = stderr[:500].decode("utf-8", errors="replace").strip()
            raise ExtractionError(f"Extraction command exited with {process.returncode}: {detail}")
        if len(stdout) > MAX_OUTPUT_BYTES:
            raise ExtractionError(f"Extraction output exceeded {MAX_OUTPUT_BYTES} bytes")
        return stdout.decode("utf-8", errors="replace")

    async def extract(self, conversation_text: str) -> list[ExtractedMemory]:
        """Extract memories from rendered conversation text."""
        prompt = build_extraction_prompt(truncate_conversation(conversation_text, self.max_chars))
        fd, raw_path = tempfile.mkstemp(prefix="recollect-extract-", suffix=".txt")
        prompt_file = Path(raw_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(prompt)
            argv = self.argv_for(prompt_file)
            logger.debug(f"Running extraction command: {argv[0]} ({len(prompt)} prompt chars)")
            try:
                stdout = await self._run(argv)
            except OSError as exc:
                raise ExtractionError(f"Extraction command failed to start: {exc}") from exc
        finally:
            prompt_file.unlink(missing_ok=True)
        return parse_extraction_response(stdout)
