"""
Ingestion module: feed sources.

Provides the FeedSource interface and the RSS/Atom implementation used
by the sync engine.
"""

from feed_sync.ingestion.base import FeedSource, StaticFeedSource
from feed_sync.ingestion.rss_reader import RssFeedSource

__all__ = ["FeedSource", "StaticFeedSource", "RssFeedSource"]
