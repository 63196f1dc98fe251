"""
Tests for the RSS/Atom feed reader.

Validates entry extraction, identifier fallbacks, content selection,
date parsing and error handling using mock HTTP and feedparser responses.

Covers:
- Parsing a real RSS document end to end
- id / guid / link identifier fallbacks and dropped entries
- Full content preferred over summary
- Malformed and unreachable feeds
"""

from datetime import datetime
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock, patch

import pytest
import requests

from feed_sync.exceptions import FetchError
from feed_sync.ingestion.rss_reader import (
    USER_AGENT,
    RssFeedSource,
    extract_feed_entry,
)


FEED_URL = "https://example.substack.com/feed"

SAMPLE_RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Example Newsletter</title>
    <link>https://example.substack.com</link>
    <item>
      <title>Quarterly marketing review</title>
      <link>https://example.substack.com/p/quarterly-review</link>
      <guid isPermaLink="false">post-101</guid>
      <pubDate>Fri, 01 Mar 2024 08:30:00 GMT</pubDate>
      <description>Short summary</description>
      <content:encoded><![CDATA[<p>Full body</p>]]></content:encoded>
    </item>
    <item>
      <title>Second post</title>
      <link>https://example.substack.com/p/second</link>
      <guid isPermaLink="false">post-102</guid>
      <pubDate>Sat, 02 Mar 2024 10:00:00 GMT</pubDate>
      <description>Only a summary</description>
    </item>
  </channel>
</rss>
"""


# ---------------------------------------------------------------------------
#  Helpers -- build realistic feedparser-like objects
# ---------------------------------------------------------------------------

class _Entry(dict):
    """feedparser entries support dict-style ``get``."""


def _make_entry(**fields: Any) -> _Entry:
    entry = _Entry(
        id="guid-001",
        title="Post 1",
        link="https://example.com/p/1",
        published="Mon, 01 Jan 2024 12:00:00 GMT",
        summary="Summary",
    )
    entry.update(fields)
    return entry


def _make_feed(
    entries: Optional[List[Dict[str, Any]]] = None,
    bozo: bool = False,
    bozo_exception: Optional[Exception] = None,
) -> SimpleNamespace:
    """Build a feedparser-style feed result."""
    return SimpleNamespace(
        entries=entries or [],
        bozo=1 if bozo else 0,
        bozo_exception=bozo_exception,
    )


def _make_http_response(content: bytes = SAMPLE_RSS, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Server Error"
        )
    else:
        response.raise_for_status.return_value = None
    return response


# ===================================================================
# End-to-end parsing
# ===================================================================

class TestFetchEntries:
    """Tests for RssFeedSource.fetch_entries()."""

    @patch("feed_sync.ingestion.rss_reader.requests.get")
    def test_parses_real_document(self, mock_get):
        mock_get.return_value = _make_http_response()

        entries = RssFeedSource(timeout=15).fetch_entries(FEED_URL)

        mock_get.assert_called_once_with(
            FEED_URL, headers={"User-Agent": USER_AGENT}, timeout=15
        )
        assert [e.id for e in entries] == ["post-101", "post-102"]
        assert entries[0].title == "Quarterly marketing review"
        assert entries[0].raw_content == "<p>Full body</p>"
        assert entries[0].link == "https://example.substack.com/p/quarterly-review"
        assert entries[0].published_at.strftime("%Y-%m-%d %H:%M") == "2024-03-01 08:30"
        assert entries[1].raw_content == "Only a summary"

    @patch("feed_sync.ingestion.rss_reader.feedparser.parse")
    @patch("feed_sync.ingestion.rss_reader.requests.get")
    def test_drops_entries_without_id(self, mock_get, mock_parse):
        mock_get.return_value = _make_http_response(b"<rss/>")
        mock_parse.return_value = _make_feed(
            entries=[_make_entry(id="keep"), _make_entry(id=None, guid=None, link=None)]
        )

        entries = RssFeedSource().fetch_entries(FEED_URL)

        assert [e.id for e in entries] == ["keep"]

    @patch("feed_sync.ingestion.rss_reader.feedparser.parse")
    @patch("feed_sync.ingestion.rss_reader.requests.get")
    def test_empty_feed(self, mock_get, mock_parse):
        mock_get.return_value = _make_http_response(b"<rss/>")
        mock_parse.return_value = _make_feed()

        assert RssFeedSource().fetch_entries(FEED_URL) == []

    @patch("feed_sync.ingestion.rss_reader.feedparser.parse")
    @patch("feed_sync.ingestion.rss_reader.requests.get")
    def test_malformed_feed_without_entries(self, mock_get, mock_parse):
        mock_get.return_value = _make_http_response(b"not xml")
        mock_parse.return_value = _make_feed(
            bozo=True, bozo_exception=Exception("syntax error")
        )

        with pytest.raises(FetchError, match="Failed to parse feed"):
            RssFeedSource().fetch_entries(FEED_URL)

    @patch("feed_sync.ingestion.rss_reader.feedparser.parse")
    @patch("feed_sync.ingestion.rss_reader.requests.get")
    def test_malformed_feed_with_entries_is_tolerated(self, mock_get, mock_parse, caplog):
        mock_get.return_value = _make_http_response(b"<rss>")
        mock_parse.return_value = _make_feed(
            entries=[_make_entry()], bozo=True, bozo_exception=Exception("mismatched tag")
        )

        entries = RssFeedSource().fetch_entries(FEED_URL)

        assert len(entries) == 1
        assert "mismatched tag" in caplog.text


class TestFetchErrors:
    """Network failures surface as FetchError."""

    @patch("feed_sync.ingestion.rss_reader.requests.get")
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout()
        with pytest.raises(FetchError, match="timed out after 30s"):
            RssFeedSource().fetch_entries(FEED_URL)

    @patch("feed_sync.ingestion.rss_reader.requests.get")
    def test_http_error(self, mock_get):
        mock_get.return_value = _make_http_response(status_code=503)
        with pytest.raises(FetchError, match="Feed HTTP error"):
            RssFeedSource().fetch_entries(FEED_URL)

    @patch("feed_sync.ingestion.rss_reader.requests.get")
    def test_connection_error(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("DNS failure")
        with pytest.raises(FetchError, match="Feed request failed"):
            RssFeedSource().fetch_entries(FEED_URL)

    def test_empty_url(self):
        with pytest.raises(FetchError):
            RssFeedSource().fetch_entries("")


# ===================================================================
# Entry extraction
# ===================================================================

class TestExtractFeedEntry:
    """Tests for extract_feed_entry()."""

    def test_guid_fallback(self):
        entry = extract_feed_entry(_make_entry(id=None, guid="guid-xyz"))
        assert entry.id == "guid-xyz"

    def test_link_fallback(self):
        entry = extract_feed_entry(_make_entry(id=None, link="https://example.com/p/7"))
        assert entry.id == "https://example.com/p/7"

    def test_no_identifier(self):
        assert extract_feed_entry(_make_entry(id="", link="")) is None

    def test_content_preferred_over_summary(self):
        raw = _make_entry(content=[{"value": ""}, {"value": "<p>Full</p>"}])
        assert extract_feed_entry(raw).raw_content == "<p>Full</p>"

    def test_description_fallback(self):
        raw = _make_entry(summary=None, description="Desc")
        assert extract_feed_entry(raw).raw_content == "Desc"

    def test_updated_date_fallback(self):
        raw = _make_entry(published=None, updated="2024-02-03T04:05:06Z")
        assert extract_feed_entry(raw).published_at.strftime("%Y-%m-%d") == "2024-02-03"

    def test_unparseable_date_uses_now(self):
        before = datetime.now()
        entry = extract_feed_entry(_make_entry(published="not a date"))
        assert entry.published_at >= before

    def test_missing_title(self):
        assert extract_feed_entry(_make_entry(title=None)).title == ""
