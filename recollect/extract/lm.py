"""Live extractor that calls a language model directly over the network via DSPy."""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable

import dspy

from recollect.config.logging import logger
from recollect.config.settings import Config
from recollect.errors import ConfigurationError, ExtractionError, ExtractionTimeout
from recollect.extract.base import truncate_conversation
from recollect.extract.prompts import build_extraction_prompt
from recollect.extract.response import parse_extraction_response
from recollect.memory.models import ExtractedMemory

OLLAMA_API_BASE = "http://127.0.0.1:11434"
OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"


def build_lm(config: Config) -> dspy.LM:
    """Build a DSPy LM for the configured ollama or openrouter provider."""
    provider = config.lm_provider
    logger.info(f"Configuring DSPy LM for {provider}: {config.lm_model}")

    if provider == "ollama":
        return dspy.LM(
            f"ollama_chat/{config.lm_model}",
            api_base=config.lm_api_base or OLLAMA_API_BASE,
            api_key="ollama",
            timeout=config.live_timeout,
            cache=False,
        )

    if provider == "openrouter":
        api_key = config.require_lm_api_key()
        return dspy.LM(
            f"openrouter/{config.lm_model}",
            api_key=api_key,
            api_base=config.lm_api_base or OPENROUTER_API_BASE,
            timeout=config.live_timeout,
            cache=False,
        )

    raise ConfigurationError(f"Unsupported RECOLLECT_LM_PROVIDER={provider!r}; use 'ollama' or 'openrouter'")


def _first_completion(outputs: Any) -> str:
    """Return the first completion text from a DSPy LM call result."""
    if isinstance(outputs, str):
        return outputs
    if not isinstance(outputs, list) or not outputs:
        return ""
    first = outputs[0]
    if isinstance(first, dict):
        return str(first.get("text") or "")
    return str(first or "")


class LMExtractor:
    """Send the extraction prompt to a network LM and parse the JSON array reply.

    The LM call runs in a daemon thread that nothing joins. On timeout the
    call is abandoned and ``ExtractionTimeout`` is raised; neither the event
    loop shutdown nor interpreter exit waits for the thread.
    """

    def __init__(
        self,
        lm: Callable[..., Any],
        *,
        max_chars: int = 30000,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.lm = lm
        self.max_chars = max_chars
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: Config) -> "LMExtractor":
        """Build the live extractor from configured provider and budgets."""
        return cls(build_lm(config), max_chars=config.live_max_chars, timeout_seconds=config.live_timeout)

    def _complete(self, prompt: str) -> str:
        return _first_completion(self.lm(prompt))

    def _start_completion(self, prompt: str) -> asyncio.Future[str]:
        """Run ``_complete`` on a detached thread and resolve a future on the running loop."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str] = loop.create_future()

        def _settle(result: str | None, error: BaseException | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result or "")

        def _worker() -> None:
            try:
                result, error = self._complete(prompt), None
            except Exception as exc:
                result, error = None, exc
            try:
                loop.call_soon_threadsafe(_settle, result, error)
            except RuntimeError:
                logger.debug("LM call finished after its event loop closed; reply dropped")

        threading.Thread(target=_worker, name="recollect-lm-call", daemon=True).start()
        return future

    async def extract(self, conversation_text: str) -> list[ExtractedMemory]:
        """Extract memories from rendered conversation text."""
        prompt = build_extraction_prompt(truncate_conversation(conversation_text, self.max_chars))
        try:
            raw = await asyncio.wait_for(self._start_completion(prompt), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise ExtractionTimeout(self.timeout_seconds) from None
        except Exception as exc:
            raise ExtractionError(f"LM extraction call failed: {exc}") from exc
        return parse_extraction_response(raw)
