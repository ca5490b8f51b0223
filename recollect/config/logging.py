"""Loguru setup shared by the CLI, the batch reviewer, and the session-end hook.

Everything logs through the loguru ``logger`` exported here. Records emitted
through stdlib ``logging`` (httpx, LiteLLM under DSPy) are routed into the same
stderr sink so one level setting controls all output.
"""

from __future__ import annotations

import logging
import os
import sys

from loguru import logger as _loguru

_TRUTHY = {"1", "true", "yes", "on"}
_TRANSPORT_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "dspy")
_DEFAULT_LEVEL = "INFO"

logger = _loguru.patch(lambda record: record["extra"].setdefault("origin", record["name"]))


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _line_format(record: dict) -> str:
    """Compact single-line layout; ``origin`` is the module or stdlib logger name."""
    record["extra"].setdefault("origin", record["name"])
    return (
        "<green>{time:HH:mm:ss.SSS}</green> "
        "<level>{level:<7}</level> "
        "<cyan>{extra[origin]}</cyan> "
        "<level>{message}</level>\n"
        "{exception}"
    )


def _keep(record: dict) -> bool:
    """Drop sub-warning transport chatter unless RECOLLECT_LOG_TRANSPORT is set."""
    origin = str(record["extra"].get("origin") or "")
    if origin.startswith(_TRANSPORT_LOGGERS) and record["level"].no < logging.WARNING:
        return _flag("RECOLLECT_LOG_TRANSPORT", default=False)
    return True


class _StdlibBridge(logging.Handler):
    """Re-emit stdlib log records through loguru under their original logger name."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.bind(origin=record.name).opt(exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: str | None = None) -> None:
    """(Re)install the stderr sink at ``level`` (default ``RECOLLECT_LOG_LEVEL`` or INFO)."""
    resolved = (level or os.getenv("RECOLLECT_LOG_LEVEL") or _DEFAULT_LEVEL).upper()
    _loguru.remove()
    _loguru.add(
        sys.stderr,
        level=resolved,
        format=_line_format,
        filter=_keep,
        colorize=_flag("RECOLLECT_LOG_COLOR", default=sys.stderr.isatty()),
        backtrace=False,
        diagnose=False,
    )
    logging.basicConfig(handlers=[_StdlibBridge()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = []
        stdlib_logger.propagate = True


__all__ = ["logger", "configure_logging"]
