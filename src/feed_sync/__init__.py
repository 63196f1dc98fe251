"""
Feed Sync

Idempotent, resumable synchronization of RSS/Atom feed entries into a
content management system, with retry tracking and rollback.
"""

__version__ = "0.1.0"
__author__ = "Feed Sync Team"

from feed_sync.config import Config

__all__ = ["Config", "__version__"]
