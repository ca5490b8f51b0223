"""Memory models exchanged between extraction and storage."""

from recollect.memory.models import (
    AUTO_EXTRACTED_TAG,
    DEFAULT_IMPORTANCE,
    ExtractedMemory,
    HealthStatus,
    MemoryType,
    RecallHit,
    StoreContext,
    StoreOutcome,
    StoreResponse,
)

__all__ = [
    "AUTO_EXTRACTED_TAG",
    "DEFAULT_IMPORTANCE",
    "ExtractedMemory",
    "HealthStatus",
    "MemoryType",
    "RecallHit",
    "StoreContext",
    "StoreOutcome",
    "StoreResponse",
]
