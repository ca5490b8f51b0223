"""Live path: extract memories from one interactive session when it ends.

The host agent exposes lifecycle events through ``on(event, handler)`` and a
UI with ``notify(message, level)``. ``register_extension`` wires the hook into
such a host; ``run_session_end_hook`` serves hosts that invoke a command with a
JSON payload on stdin instead.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Protocol

from recollect.app.pipeline import SessionResult, run_pipeline
from recollect.config.logging import logger
from recollect.config.settings import Config
from recollect.errors import ConfigurationError, HealthCheckFailure
from recollect.extract.base import Extractor
from recollect.extract.lm import LMExtractor
from recollect.memory.models import StoreContext
from recollect.sessions.parser import NormalizedConversation, parse_records, parse_session_file, parse_transcript
from recollect.store.client import MemoryStoreClient

LIVE_SOURCE = "session-end-hook"
MISSING_TOKEN_MESSAGE = "AutoMem: AUTOMEM_TOKEN not set. Set it to enable memory tools."

Notify = Callable[[str, str], Any]


class UIContext(Protocol):
    def notify(self, message: str, level: str) -> Any: ...


class EventContext(Protocol):
    ui: UIContext


class ExtensionHost(Protocol):
    def on(self, event: str, handler: Callable[[Any, EventContext], Awaitable[None]]) -> Any: ...


def _to_conversation(snapshot: Any, session_path: str | None) -> NormalizedConversation:
    """Normalize a snapshot given as JSONL text, raw lines, or decoded records."""
    if snapshot is None:
        if not session_path:
            return NormalizedConversation()
        return parse_session_file(session_path)
    if isinstance(snapshot, str):
        return parse_transcript(snapshot)
    items = list(snapshot)
    if items and all(isinstance(item, str) for item in items):
        return parse_transcript(items)
    return parse_records(items)


class SessionEndHook:
    """One-shot session-end callback.

    Runs parse, gate, extract, and store for the ending session. Every error is
    logged and swallowed here, so the host never sees an exception from the
    hook. A second invocation on the same instance is a no-op.
    """

    def __init__(
        self,
        config: Config,
        *,
        extractor: Extractor | None = None,
        store: MemoryStoreClient | None = None,
        notify: Notify | None = None,
    ) -> None:
        self.config = config
        self._extractor = extractor
        self._store = store
        self.notify = notify
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def _emit(self, message: str, level: str = "info") -> None:
        if self.notify is None:
            return
        try:
            self.notify(message, level)
        except Exception as exc:
            logger.debug(f"notify failed: {exc}")

    async def _run(
        self,
        snapshot: Any,
        session_id: str | None,
        session_path: str | None,
    ) -> SessionResult:
        conversation = _to_conversation(snapshot, session_path)
        extractor = self._extractor or LMExtractor.from_config(self.config)
        context = StoreContext(
            source=LIVE_SOURCE,
            session_path=session_path,
            session_id=session_id,
            extracted_at=datetime.now(timezone.utc),
        )
        label = session_path or session_id or "current-session"
        if self._store is not None:
            return await run_pipeline(
                conversation,
                label=label,
                min_turns=self.config.min_turns,
                extractor=extractor,
                store=self._store,
                context=context,
            )
        async with MemoryStoreClient.from_config(self.config) as store:
            return await run_pipeline(
                conversation,
                label=label,
                min_turns=self.config.min_turns,
                extractor=extractor,
                store=store,
                context=context,
            )

    async def __call__(
        self,
        snapshot: Any = None,
        *,
        session_id: str | None = None,
        session_path: str | None = None,
    ) -> SessionResult | None:
        if self._fired:
            logger.debug("Session-end hook already ran; ignoring")
            return None
        self._fired = True
        try:
            result = await self._run(snapshot, session_id, session_path)
        except Exception as exc:
            logger.warning(f"AutoMem session-end extraction failed: {exc}")
            return None
        logger.info(
            f"Session-end extraction: {result.outcome.value} "
            f"(extracted={result.extracted}, stored={result.stored}, failed={result.failed})"
        )
        if result.stored:
            self._emit(f"AutoMem: stored {result.stored} memories from this session")
        return result


def _event_value(event: Any, key: str) -> Any:
    if isinstance(event, Mapping):
        return event.get(key)
    return getattr(event, key, None)


def snapshot_from_event(event: Any) -> tuple[Any, str | None, str | None]:
    """Pull ``(snapshot, session_id, transcript_path)`` out of a shutdown event."""
    snapshot = _event_value(event, "entries")
    if snapshot is None:
        snapshot = _event_value(event, "messages")
    session_id = _event_value(event, "session_id") or _event_value(event, "sessionId")
    transcript_path = _event_value(event, "transcript_path") or _event_value(event, "sessionFile")
    return snapshot, session_id, str(transcript_path) if transcript_path else None


def register_extension(
    host: ExtensionHost,
    config: Config,
    *,
    extractor: Extractor | None = None,
    store: MemoryStoreClient | None = None,
) -> SessionEndHook | None:
    """Attach lifecycle handlers to ``host``; return the session-end hook when one is registered."""
    if not config.store_token:

        async def _warn_missing_token(_event: Any, ctx: EventContext) -> None:
            ctx.ui.notify(MISSING_TOKEN_MESSAGE, "warning")

        host.on("session_start", _warn_missing_token)
        return None

    async def _announce_connection(_event: Any, ctx: EventContext) -> None:
        try:
            if store is not None:
                health = await store.health()
            else:
                async with MemoryStoreClient.from_config(config) as client:
                    health = await client.health()
        except (HealthCheckFailure, ConfigurationError) as exc:
            logger.debug(f"AutoMem health check at session start failed: {exc}")
            return
        ctx.ui.notify(f"AutoMem connected ({health.memory_count} memories)", "info")

    host.on("session_start", _announce_connection)

    if not config.auto_extract:
        return None

    hook = SessionEndHook(config, extractor=extractor, store=store)

    async def _extract_on_shutdown(event: Any, ctx: EventContext) -> None:
        hook.notify = ctx.ui.notify
        snapshot, session_id, transcript_path = snapshot_from_event(event)
        await hook(snapshot, session_id=session_id, session_path=transcript_path)

    host.on("session_shutdown", _extract_on_shutdown)
    return hook


def run_session_end_hook(
    payload: Mapping[str, Any],
    config: Config,
    *,
    extractor: Extractor | None = None,
    store: MemoryStoreClient | None = None,
) -> int:
    """Handle a command-style ``SessionEnd`` hook payload; always exit 0."""
    if not config.store_token:
        logger.warning("AUTOMEM_TOKEN not set; skipping session-end extraction")
        return 0
    if not config.auto_extract:
        logger.debug("Auto-extract disabled; skipping session-end extraction")
        return 0
    transcript_path = payload.get("transcript_path")
    if not transcript_path:
        logger.warning("Session-end payload has no transcript_path; nothing to extract")
        return 0
    if not Path(str(transcript_path)).expanduser().is_file():
        logger.warning(f"Transcript not found: {transcript_path}")
        return 0
    hook = SessionEndHook(config, extractor=extractor, store=store)
    asyncio.run(
        hook(
            session_id=payload.get("session_id"),
            session_path=str(Path(str(transcript_path)).expanduser()),
        )
    )
    return 0

