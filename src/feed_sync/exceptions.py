"""
Exception hierarchy for the feed synchronization engine.

Only ``FetchError`` aborts a run. ``StoreError`` is isolated to the item
that raised it and recorded in the ledger; ``HookError`` is logged and
otherwise ignored.
"""


class FeedSyncError(Exception):
    """Base class for all feed-sync errors."""


class ConfigurationError(FeedSyncError):
    """Required configuration (feed URL, destination credentials) is missing."""


class FetchError(FeedSyncError):
    """The feed could not be fetched or parsed."""


class StoreError(FeedSyncError):
    """
    A destination-store create, update or delete call failed.

    Attributes:
        local_record_id: Destination record involved, or 0 for a create
    """

    def __init__(self, message: str, local_record_id: int = 0):
        super().__init__(message)
        self.local_record_id = local_record_id


class HookError(FeedSyncError):
    """A post-sync side-effect hook (media import, template) failed."""


__all__ = [
    "FeedSyncError",
    "ConfigurationError",
    "FetchError",
    "StoreError",
    "HookError",
]
