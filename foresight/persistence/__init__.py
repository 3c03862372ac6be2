"""
Opaque key-value persistence for ledgers and experiment records.

The host supplies the storage; these classes define the seam and provide
in-memory and JSON-file backends.
"""

from foresight.persistence.state_store import (
    InMemoryStateStore,
    JSONFileStateStore,
    StateStore,
    safe_get,
    safe_put,
)

__all__ = [
    "InMemoryStateStore",
    "JSONFileStateStore",
    "StateStore",
    "safe_get",
    "safe_put",
]
