"""
Shared test fixtures.

Provides pytest fixtures for common test resources including:
- Temporary ledger database
- Sync settings with category mappings
- In-memory destination store and static feed source
- A sync engine wired with a fixed clock
"""

import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List

import pytest

from feed_sync.config import SyncSettings
from feed_sync.destinations.memory import InMemoryDestinationStore
from feed_sync.ingestion.base import StaticFeedSource
from feed_sync.mapping.content_mapper import ContentMapper
from feed_sync.models.database import Database
from feed_sync.models.entities import CategoryMapping, FeedEntry
from feed_sync.models.ledger import LedgerStore
from feed_sync.sync.engine import SyncEngine


FEED_URL = "https://example.substack.com/feed"


class FakeClock:
    """Clock advancing one second per call, starting at a fixed instant."""

    def __init__(self, start: datetime = datetime(2024, 3, 10, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


def make_entry(
    entry_id: str = "post-1",
    title: str = "First Post",
    body: str = "<p>Hello world</p>",
    published: datetime = datetime(2024, 3, 1, 8, 30, 0),
) -> FeedEntry:
    """Build a FeedEntry with sensible defaults."""
    return FeedEntry(
        id=entry_id,
        title=title,
        raw_content=body,
        published_at=published,
        link=f"https://example.substack.com/p/{entry_id}",
    )


@pytest.fixture
def temp_dir():
    """
    Create temporary directory for test files.

    Yields:
        Path: Temporary directory path
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_db(temp_dir: Path) -> Database:
    """Initialized ledger database in a temporary directory."""
    db = Database(temp_dir / "ledger.db")
    db.initialize()
    return db


@pytest.fixture
def ledger(test_db: Database) -> LedgerStore:
    return LedgerStore(test_db)


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(
        feed_url=FEED_URL,
        category_mappings=(
            CategoryMapping(keyword="marketing", category_id=5),
            CategoryMapping(keyword="finance", category_id=7),
        ),
    )


@pytest.fixture
def destination() -> InMemoryDestinationStore:
    return InMemoryDestinationStore()


@pytest.fixture
def sample_entries() -> List[FeedEntry]:
    """Three entries A, B, C in feed order."""
    return [
        make_entry("A", "Alpha: marketing basics"),
        make_entry("B", "Bravo"),
        make_entry("C", "Charlie on finance"),
    ]


@pytest.fixture
def feed_source(sample_entries: List[FeedEntry]) -> StaticFeedSource:
    return StaticFeedSource(sample_entries)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_engine(
    ledger: LedgerStore,
    feed_source: StaticFeedSource,
    destination: InMemoryDestinationStore,
    settings: SyncSettings,
    clock: FakeClock,
) -> Callable[..., SyncEngine]:
    """
    Factory building a SyncEngine over the shared fixtures.

    Keyword arguments override the engine's constructor arguments.
    """

    def _make(**overrides) -> SyncEngine:
        params = dict(
            ledger=ledger,
            feed_source=feed_source,
            destination=destination,
            mapper=ContentMapper(settings, destination),
            settings=settings,
            clock=clock,
        )
        params.update(overrides)
        return SyncEngine(**params)

    return _make


@pytest.fixture
def engine(make_engine) -> SyncEngine:
    return make_engine()
