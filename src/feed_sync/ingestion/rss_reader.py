"""
RSS/Atom feed reader.

Downloads the feed with requests (so a timeout applies), parses it with
feedparser and normalizes each entry into a ``FeedEntry``. Entries without
a stable identifier are dropped, since they cannot be tracked in the ledger.

Example:
    >>> reader = RssFeedSource(timeout=15)
    >>> entries = reader.fetch_entries("https://example.substack.com/feed")
    >>> print(f"Found {len(entries)} entries")
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

import feedparser
import requests
from dateutil import parser as date_parser

from feed_sync.exceptions import FetchError
from feed_sync.ingestion.base import FeedSource
from feed_sync.models.entities import FeedEntry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30  # seconds
USER_AGENT = "feed-sync/0.1"


class RssFeedSource(FeedSource):
    """
    Feed source for RSS 2.0 and Atom feeds.

    Attributes:
        timeout: Request timeout in seconds
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def fetch_entries(self, feed_url: str) -> List[FeedEntry]:
        """
        Fetch the feed and return its entries in feed order.

        Args:
            feed_url: URL of the feed

        Returns:
            List of FeedEntry objects

        Raises:
            FetchError: On network/HTTP failure, or when the document cannot
                be parsed and yields no entries
        """
        if not feed_url:
            raise FetchError("No feed URL given")

        logger.info("Fetching feed from %s", feed_url)
        try:
            response = requests.get(
                feed_url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            raise FetchError(
                f"Feed request timed out after {self.timeout}s: {feed_url}"
            ) from exc
        except requests.exceptions.HTTPError as exc:
            raise FetchError(f"Feed HTTP error: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise FetchError(f"Feed request failed: {exc}") from exc

        feed = feedparser.parse(response.content)

        if feed.bozo and not feed.entries:
            raise FetchError(f"Failed to parse feed: {feed.bozo_exception}")
        if feed.bozo:
            logger.warning("Feed parsing encountered errors: %s", feed.bozo_exception)

        entries = []
        for raw_entry in feed.entries:
            entry = extract_feed_entry(raw_entry)
            if entry is not None:
                entries.append(entry)

        logger.info("Parsed %d entries from feed", len(entries))
        return entries


def extract_feed_entry(raw_entry: Any) -> Optional[FeedEntry]:
    """
    Normalize a feedparser entry into a FeedEntry.

    The identifier is the entry's ``id``/``guid``, falling back to its link.
    The body prefers the full ``content`` over ``summary``/``description``.

    Args:
        raw_entry: feedparser entry object

    Returns:
        FeedEntry, or None if the entry has no usable identifier
    """
    external_id = raw_entry.get("id") or raw_entry.get("guid") or raw_entry.get("link")
    title = raw_entry.get("title") or ""

    if not external_id:
        logger.warning("Skipping feed entry without id (title=%r)", title)
        return None

    return FeedEntry(
        id=external_id,
        title=title,
        raw_content=_extract_content(raw_entry),
        published_at=_extract_published(raw_entry),
        link=raw_entry.get("link") or "",
    )


def _extract_content(raw_entry: Any) -> str:
    """Return the richest body available on the entry."""
    content = raw_entry.get("content")
    if content:
        for part in content:
            value = part.get("value")
            if value:
                return value
    return raw_entry.get("summary") or raw_entry.get("description") or ""


def _extract_published(raw_entry: Any) -> datetime:
    """
    Parse the entry's publication date.

    Falls back to the update date, then to now, when the feed carries no
    parseable date.
    """
    raw_date = raw_entry.get("published") or raw_entry.get("updated")
    if raw_date:
        try:
            return date_parser.parse(raw_date)
        except (ValueError, OverflowError) as exc:
            logger.warning("Failed to parse date '%s': %s", raw_date, exc)
    return datetime.now()
