"""
Feed source interface.

A feed source turns a feed URL into an ordered list of ``FeedEntry``
objects. It must return a stable ``id`` per logical entry across repeated
fetches, since the ledger is keyed by it.
"""

from abc import ABC, abstractmethod
from typing import List

from feed_sync.models.entities import FeedEntry


class FeedSource(ABC):
    """Abstract base class for feed sources."""

    @abstractmethod
    def fetch_entries(self, feed_url: str) -> List[FeedEntry]:
        """
        Fetch and parse the feed.

        Args:
            feed_url: URL of the feed

        Returns:
            Entries in feed order

        Raises:
            FetchError: If the feed is unreachable or malformed
        """
        raise NotImplementedError


class StaticFeedSource(FeedSource):
    """
    Feed source serving a fixed list of entries.

    Useful for replaying an exported feed and for tests. ``entries`` may be
    reassigned between calls to simulate upstream changes.
    """

    def __init__(self, entries: List[FeedEntry]):
        self.entries = list(entries)
        self.fetch_count = 0

    def fetch_entries(self, feed_url: str) -> List[FeedEntry]:
        self.fetch_count += 1
        return list(self.entries)
