"""Exception taxonomy for the session-to-memory pipeline.

Failures below the session boundary (discovery I/O, transcript lines, model
response parsing, single store calls) are absorbed where they occur. Failures
at the session boundary (extraction errors and timeouts) skip the session
without marking it processed. Run-level failures (configuration, store health)
stop the run before any session is touched.
"""

from __future__ import annotations


class RecollectError(Exception):
    """Base class for all recollect errors."""


class ConfigurationError(RecollectError):
    """Required configuration is missing or invalid at startup."""


class DiscoveryIOError(RecollectError):
    """A session directory could not be read."""


class TranscriptParseError(RecollectError):
    """One transcript line is not a valid structured record."""


class ExtractionError(RecollectError):
    """The extraction model call failed."""


class ExtractionTimeout(ExtractionError):
    """The extraction model call exceeded its hard timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Extraction timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class ExtractionParseFailure(RecollectError):
    """The model response did not contain a usable JSON array."""


class StoreFailure(RecollectError):
    """One memory could not be persisted to the memory store."""

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class HealthCheckFailure(RecollectError):
    """The memory store is unreachable or reports an unhealthy status."""


__all__ = [
    "RecollectError",
    "ConfigurationError",
    "DiscoveryIOError",
    "TranscriptParseError",
    "ExtractionError",
    "ExtractionTimeout",
    "ExtractionParseFailure",
    "StoreFailure",
    "HealthCheckFailure",
]
