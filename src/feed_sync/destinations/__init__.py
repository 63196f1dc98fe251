"""
Destination stores, content type registries and post-sync hooks.
"""

from feed_sync.destinations.base import (
    ContentTypeRegistry,
    DestinationStore,
    NullHooks,
    SyncHooks,
)
from feed_sync.destinations.memory import InMemoryDestinationStore

__all__ = [
    "ContentTypeRegistry",
    "DestinationStore",
    "InMemoryDestinationStore",
    "NullHooks",
    "SyncHooks",
]
