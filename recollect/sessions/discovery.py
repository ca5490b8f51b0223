"""Find transcript files touched inside a recent time window."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from recollect.config.logging import logger

ARTIFACT_DIR_NAME = "subagent-artifacts"
TRANSCRIPT_SUFFIX = ".jsonl"


@dataclass(frozen=True)
class SessionHandle:
    """One discovered transcript file."""

    path: str
    last_modified: datetime

    @property
    def name(self) -> str:
        """Return the transcript file name for log lines."""
        return Path(self.path).name

    @classmethod
    def from_path(cls, path: str | Path) -> "SessionHandle":
        """Build a handle for an explicitly named transcript, keeping the path string as given."""
        raw = str(path)
        try:
            mtime = os.stat(raw).st_mtime
        except OSError:
            mtime = 0.0
        return cls(path=raw, last_modified=datetime.fromtimestamp(mtime, tz=timezone.utc))


def _scan(directory: str, cutoff: float, ceiling: float, found: list[tuple[float, str]]) -> None:
    """Collect ``(mtime, path)`` pairs below ``directory`` with ``cutoff <= mtime <= ceiling``."""
    try:
        with os.scandir(directory) as entries:
            children = list(entries)
    except OSError as exc:
        logger.debug(f"Skipping unreadable directory {directory}: {exc}")
        return

    for entry in children:
        try:
            if entry.is_dir(follow_symlinks=False):
                if entry.name != ARTIFACT_DIR_NAME:
                    _scan(entry.path, cutoff, ceiling, found)
                continue
            if not entry.name.endswith(TRANSCRIPT_SUFFIX):
                continue
            mtime = entry.stat().st_mtime
        except OSError as exc:
            logger.debug(f"Skipping unreadable entry {entry.path}: {exc}")
            continue
        if cutoff <= mtime <= ceiling:
            found.append((mtime, entry.path))


def find_recent_sessions(
    root: str | Path,
    hours: float,
    *,
    now: datetime | None = None,
) -> list[SessionHandle]:
    """Return transcripts under ``root`` modified within the last ``hours``, newest first.

    Subdirectories named ``subagent-artifacts`` are not descended into, and
    directories that cannot be listed are skipped so one bad subtree never
    aborts the scan. Directory symlinks are not followed, so every transcript
    is reported under a single path.
    """
    current = now or datetime.now(timezone.utc)
    cutoff = (current - timedelta(hours=hours)).timestamp()
    found: list[tuple[float, str]] = []
    _scan(str(Path(root).expanduser()), cutoff, current.timestamp(), found)
    found.sort(key=lambda item: item[0], reverse=True)
    return [
        SessionHandle(path=path, last_modified=datetime.fromtimestamp(mtime, tz=timezone.utc))
        for mtime, path in found
    ]
