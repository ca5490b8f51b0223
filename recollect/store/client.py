"""Async HTTP client for an AutoMem-compatible memory store."""

from __future__ import annotations

from typing import Any, Iterable

import httpx
from pydantic import ValidationError

from recollect.config.logging import logger
from recollect.config.settings import Config
from recollect.errors import HealthCheckFailure, StoreFailure
from recollect.memory.models import (
    ExtractedMemory,
    HealthStatus,
    RecallHit,
    StoreContext,
    StoreOutcome,
    StoreResponse,
)


def build_memory_payload(memory: ExtractedMemory, context: StoreContext) -> dict[str, Any]:
    """Build the ``POST /memory`` body with provenance tags and metadata."""
    tags = list(memory.tags)
    for tag in context.provenance_tags():
        if tag not in tags:
            tags.append(tag)
    payload: dict[str, Any] = {
        "content": memory.content,
        "importance": memory.importance,
        "tags": tags,
        "metadata": context.metadata(),
    }
    if memory.type is not None:
        payload["type"] = memory.type.value
    return payload


class MemoryStoreClient:
    """Store, recall, and health calls against the memory service.

    One request per memory; callers own batching policy. The client can be
    used as an async context manager or closed explicitly with ``aclose``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: Config, *, transport: httpx.AsyncBaseTransport | None = None) -> "MemoryStoreClient":
        """Build a client from config, failing when the store token is missing."""
        return cls(
            config.store_url,
            config.require_store_token(),
            timeout=config.store_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "MemoryStoreClient":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def health(self) -> HealthStatus:
        """Return store health; raise ``HealthCheckFailure`` when unreachable or not ok."""
        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as exc:
            raise HealthCheckFailure(f"Cannot connect to memory store at {self.base_url}: {exc}") from exc
        if not response.is_success:
            raise HealthCheckFailure(f"Memory store unhealthy ({response.status_code}): {response.text}")
        try:
            return HealthStatus.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise HealthCheckFailure(f"Malformed health response: {exc}") from exc

    async def store(self, memory: ExtractedMemory, context: StoreContext) -> StoreResponse:
        """Persist one memory; raise ``StoreFailure`` with the response body on failure."""
        payload = build_memory_payload(memory, context)
        try:
            response = await self._client.post("/memory", json=payload)
        except httpx.HTTPError as exc:
            raise StoreFailure(f"Error connecting to memory store: {exc}") from exc
        if not response.is_success:
            raise StoreFailure(f"Memory store error: {response.text}", status_code=response.status_code)
        try:
            return StoreResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            return StoreResponse()

    async def store_all(self, memories: Iterable[ExtractedMemory], context: StoreContext) -> StoreOutcome:
        """Store each memory independently; one failure never stops its siblings."""
        outcome = StoreOutcome()
        for memory in memories:
            try:
                result = await self.store(memory, context)
            except StoreFailure as exc:
                logger.warning(f"Failed to store memory: {exc.reason}")
                outcome.failed_count += 1
                continue
            logger.debug(f"Stored memory {result.memory_id} ({result.type})")
            outcome.stored_count += 1
        return outcome

    async def recall(
        self,
        query: str,
        *,
        limit: int = 5,
        tags: list[str] | None = None,
        time_query: str | None = None,
    ) -> list[RecallHit]:
        """Search stored memories; raise ``StoreFailure`` when the search call fails."""
        params: list[tuple[str, str]] = [("query", query), ("limit", str(limit))]
        for tag in tags or []:
            params.append(("tags", tag))
        if time_query:
            params.append(("time_query", time_query))
        try:
            response = await self._client.get("/recall", params=params)
        except httpx.HTTPError as exc:
            raise StoreFailure(f"Error connecting to memory store: {exc}") from exc
        if not response.is_success:
            raise StoreFailure(f"Failed to recall memories: {response.text}", status_code=response.status_code)
        try:
            body = response.json()
        except ValueError as exc:
            raise StoreFailure(f"Malformed recall response: {exc}") from exc
        results = body.get("results") if isinstance(body, dict) else None
        return [RecallHit.from_result(item) for item in results or [] if isinstance(item, dict)]
