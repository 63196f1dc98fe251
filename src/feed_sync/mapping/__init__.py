"""
Content mapping: feed entries to destination payloads.
"""

from feed_sync.mapping.content_mapper import ContentMapper, classify, sanitize_body

__all__ = ["ContentMapper", "classify", "sanitize_body"]
