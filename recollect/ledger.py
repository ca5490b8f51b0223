"""Append-only record of transcripts the batch reviewer has already handled."""

from __future__ import annotations

from pathlib import Path

from recollect.config.logging import logger


class ProcessedLedger:
    """Line-oriented set of processed transcript paths.

    Membership is an exact string match on the path as discovered; no path
    normalization is applied. ``has`` re-reads the whole file on every call.
    ``mark`` appends one line and does nothing in dry-run mode. Entries are
    never removed.
    """

    def __init__(self, path: str | Path, *, dry_run: bool = False) -> None:
        self.path = Path(path).expanduser()
        self.dry_run = dry_run

    def entries(self) -> set[str]:
        """Load every recorded path; a missing file means nothing processed yet."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return set()
        return {line for line in content.split("\n") if line}

    def has(self, session_path: str) -> bool:
        return session_path in self.entries()

    def mark(self, session_path: str) -> None:
        if self.dry_run:
            logger.debug(f"Dry run: not marking {session_path}")
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(f"{session_path}\n")
