"""Store for the resources read and patched by promotion steps.

The store is the only place objects are mutated. Every patch is guarded by
the resource version the caller last observed, so writes that race with the
Application controller or another promotion fail with a `ConflictError`
instead of overwriting each other.
"""

from .store import PatchFn, Store, StoreEvent
from .in_memory import InMemoryStore

__all__ = [
    "PatchFn",
    "Store",
    "StoreEvent",
    "InMemoryStore",
]
