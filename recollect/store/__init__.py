"""Memory store client."""

from recollect.store.client import MemoryStoreClient, build_memory_payload

__all__ = ["MemoryStoreClient", "build_memory_payload"]
