"""
Content mapping from feed entries to destination payloads.

Cleans newsletter-specific markup out of the entry body, resolves the
destination content type and its category taxonomy, and assigns
categories by keyword.

Example:
    >>> mapper = ContentMapper(settings, registry)
    >>> payload = mapper.build_payload(entry)
    >>> payload.category_ids
    [5]
"""

import html
import logging
import re
from typing import Iterable, List

from feed_sync.config import SyncSettings
from feed_sync.destinations.base import ContentTypeRegistry
from feed_sync.models.entities import (
    CategoryMapping,
    DestinationPayload,
    FeedEntry,
    LEDGER_TIMESTAMP_FORMAT,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Body sanitizing
# ---------------------------------------------------------------------------

SUBSCRIPTION_BLOCK_RE = re.compile(
    r'<div[^>]*class="[^"]*subscription[^"]*"[^>]*>.*?</div>',
    re.IGNORECASE | re.DOTALL,
)
LIKE_BUTTON_BLOCK_RE = re.compile(
    r'<div[^>]*class="[^"]*like-button[^"]*"[^>]*>.*?</div>',
    re.IGNORECASE | re.DOTALL,
)

SUBSCRIBE_LINK_TEMPLATE = (
    '<div class="feed-subscribe-block">'
    '<a href="{url}" target="_blank">Subscribe to our newsletter</a>'
    '</div>'
)


def subscribe_block(feed_url: str) -> str:
    """Canonical subscribe link block pointing at the feed."""
    return SUBSCRIBE_LINK_TEMPLATE.format(url=html.escape(feed_url or "", quote=True))


def sanitize_body(body: str, feed_url: str) -> str:
    """
    Replace subscription prompts and strip like buttons.

    Only ``<div>`` blocks whose class mentions ``subscription`` or
    ``like-button`` are touched; everything else passes through unchanged.

    Args:
        body: Raw entry HTML
        feed_url: URL the subscribe link should point at

    Returns:
        Cleaned HTML
    """
    replacement = subscribe_block(feed_url)
    body = SUBSCRIPTION_BLOCK_RE.sub(lambda _match: replacement, body)
    return LIKE_BUTTON_BLOCK_RE.sub("", body)


# ---------------------------------------------------------------------------
#  Classification
# ---------------------------------------------------------------------------

def classify(text: str, mappings: Iterable[CategoryMapping]) -> List[int]:
    """
    Assign categories by case-insensitive keyword containment.

    Mappings are applied in order; each matching category id is added once,
    in first-seen order. Mappings with an empty keyword or a category id
    below 1 are ignored. There is no word-boundary requirement:
    ``"market"`` matches ``"marketing"``.

    Args:
        text: Text to search (title and body)
        mappings: Ordered keyword rules

    Returns:
        Matching category ids

    Example:
        >>> classify("Marketing Tips", [CategoryMapping(keyword="marketing", category_id=5)])
        [5]
    """
    haystack = text.lower()
    assigned: List[int] = []

    for mapping in mappings:
        keyword = mapping.keyword.strip().lower()
        if not keyword or mapping.category_id <= 0:
            continue
        if keyword in haystack and mapping.category_id not in assigned:
            assigned.append(mapping.category_id)

    return assigned


# ---------------------------------------------------------------------------
#  Mapper
# ---------------------------------------------------------------------------

class ContentMapper:
    """
    Builds destination payloads from feed entries.

    Attributes:
        settings: Read-only sync settings
        registry: Answers which content types and taxonomies exist
    """

    def __init__(self, settings: SyncSettings, registry: ContentTypeRegistry) -> None:
        self.settings = settings
        self.registry = registry

    def build_payload(self, entry: FeedEntry) -> DestinationPayload:
        """
        Map a feed entry to a destination payload.

        The status is the configured default; the sync engine overrides it
        for updates.

        Args:
            entry: Entry to map

        Returns:
            DestinationPayload ready for the destination store
        """
        body = sanitize_body(entry.raw_content, self.settings.feed_url)
        content_type = self.resolve_content_type()
        taxonomy = self.resolve_taxonomy(content_type)

        category_ids: List[int] = []
        if taxonomy:
            category_ids = classify(f"{entry.title} {body}", self.settings.category_mappings)

        logger.debug(
            "Mapped entry %s -> type=%s taxonomy=%s categories=%s",
            entry.id,
            content_type,
            taxonomy or "-",
            category_ids,
        )

        return DestinationPayload(
            title=entry.title,
            body=body,
            status=self.settings.default_status,
            author=self.settings.default_author,
            publish_date=entry.published_at.strftime(LEDGER_TIMESTAMP_FORMAT),
            content_type=content_type,
            category_ids=category_ids,
            taxonomy_key=taxonomy,
        )

    def resolve_content_type(self) -> str:
        """
        Configured content type, or the fallback when unset or unknown.

        The fallback is the specialized type when the destination has it,
        otherwise the generic fallback type.
        """
        configured = self.settings.default_content_type
        if configured and self.registry.content_type_exists(configured):
            return configured

        if configured:
            logger.warning("Content type '%s' does not exist, using fallback", configured)

        specialized = self.settings.specialized_content_type
        if specialized and self.registry.content_type_exists(specialized):
            return specialized
        return self.settings.fallback_content_type

    def resolve_taxonomy(self, content_type: str) -> str:
        """
        Taxonomy used for keyword classification, or "" if none applies.
        """
        settings = self.settings
        if (
            content_type == settings.specialized_content_type
            and self.registry.taxonomy_exists(settings.specialized_taxonomy)
        ):
            return settings.specialized_taxonomy

        if self.registry.taxonomy_exists(settings.generic_taxonomy):
            if settings.generic_taxonomy in self.registry.taxonomies_for(content_type):
                return settings.generic_taxonomy

        return ""
