"""
Pydantic data models for feed entries, ledger records and payloads.

Defines type-safe models with validation for everything that crosses a
component boundary: entries produced by the feed source, rows of the sync
ledger, category mappings from configuration, and the payload handed to
the destination store.
"""

import sqlite3
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


# Ledger timestamps are naive local time at second precision so that
# lexical order matches chronological order.
LEDGER_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: datetime) -> str:
    """Format a datetime for storage in the ledger."""
    return value.strftime(LEDGER_TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a ledger timestamp, returning None for empty values."""
    if not value:
        return None
    return datetime.strptime(value, LEDGER_TIMESTAMP_FORMAT)


class SyncStatus(str, Enum):
    """Status of a ledger row."""
    IMPORTED = "imported"
    UPDATED = "updated"
    ERROR = "error"
    PENDING = "pending"


class FeedEntry(BaseModel):
    """
    A single entry of the upstream feed.

    ``id`` is the stable external identifier the ledger is keyed by.
    Entries are produced by the feed source and never mutated.
    """
    id: str = Field(min_length=1)
    title: str = ""
    raw_content: str = ""
    published_at: datetime
    link: str = ""

    class Config:
        """Pydantic configuration."""
        frozen = True


class SyncRecord(BaseModel):
    """
    One row of the sync ledger.

    Exactly one record exists per ``external_id``. ``local_record_id`` is 0
    when no destination record was ever created for the entry.
    """
    external_id: str = Field(min_length=1)
    local_record_id: int = Field(default=0, ge=0)
    title: str = ""
    last_synced_at: Optional[datetime] = None
    status: SyncStatus = SyncStatus.PENDING
    retry_count: int = Field(default=0, ge=0)
    error_message: str = ""

    class Config:
        """Pydantic configuration."""
        from_attributes = True

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "SyncRecord":
        """Build a record from a ``sync_log`` row."""
        return cls(
            external_id=row["external_id"],
            local_record_id=row["local_record_id"] or 0,
            title=row["title"] or "",
            last_synced_at=parse_timestamp(row["last_synced_at"]),
            status=SyncStatus(row["status"]),
            retry_count=row["retry_count"] or 0,
            error_message=row["error_message"] or "",
        )


class CategoryMapping(BaseModel):
    """
    Keyword to category assignment rule.

    Accepts ``category`` as an alias of ``category_id`` so mappings can be
    written either way in feed_sync.yaml. Blank values become empty/0 and
    are skipped during classification.
    """
    keyword: str = ""
    category_id: int = Field(
        default=0,
        validation_alias=AliasChoices("category_id", "category"),
    )

    @field_validator("keyword", mode="before")
    @classmethod
    def coerce_keyword(cls, v):
        """Treat a missing keyword as empty."""
        return "" if v is None else str(v)

    @field_validator("category_id", mode="before")
    @classmethod
    def coerce_category(cls, v):
        """Treat a missing or blank category as 0."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return v


class DestinationPayload(BaseModel):
    """
    Record payload handed to the destination store.

    ``taxonomy_key`` names the taxonomy ``category_ids`` belong to, or is
    empty when no taxonomy applies to the content type.
    """
    title: str
    body: str
    status: str
    author: int
    publish_date: str
    content_type: str
    category_ids: List[int] = Field(default_factory=list)
    taxonomy_key: str = ""


class LedgerStats(BaseModel):
    """Aggregate counts over the whole ledger."""
    total_count: int = 0
    imported_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    pending_count: int = 0
    last_sync_at: Optional[datetime] = None
