"""
In-memory destination store.

Keeps records in a dict and can be told to fail specific writes or
deletes. Used by ``feed-sync --dry-run`` and throughout the tests.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

from feed_sync.destinations.base import ContentTypeRegistry, DestinationStore
from feed_sync.exceptions import StoreError
from feed_sync.models.entities import DestinationPayload

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPES: Dict[str, List[str]] = {
    "post": ["category", "post_tag"],
    "page": [],
}


class InMemoryDestinationStore(DestinationStore, ContentTypeRegistry):
    """
    Destination store and content type registry held in memory.

    Attributes:
        records: Current records by id
        content_types: Content type name -> attached taxonomies
        fail_titles: Creates/updates of payloads with these titles raise
            StoreError
        fail_deletes: Deletes of these ids return False
        calls: Chronological log of ``(operation, record_id)`` tuples
    """

    def __init__(
        self,
        content_types: Optional[Dict[str, List[str]]] = None,
        fail_titles: Optional[Iterable[str]] = None,
        fail_deletes: Optional[Iterable[int]] = None,
    ) -> None:
        self.records: Dict[int, DestinationPayload] = {}
        self.content_types: Dict[str, List[str]] = (
            dict(DEFAULT_CONTENT_TYPES) if content_types is None else dict(content_types)
        )
        self.fail_titles: Set[str] = set(fail_titles or ())
        self.fail_deletes: Set[int] = set(fail_deletes or ())
        self.calls: List[tuple] = []
        self._next_id = 1

    # -------------------------------------------------------------------
    #  DestinationStore interface
    # -------------------------------------------------------------------

    def create(self, payload: DestinationPayload) -> int:
        self.calls.append(("create", 0))
        if payload.title in self.fail_titles:
            raise StoreError(f"Could not create record '{payload.title}'")

        record_id = self._next_id
        self._next_id += 1
        self.records[record_id] = payload
        return record_id

    def update(self, local_record_id: int, payload: DestinationPayload) -> int:
        self.calls.append(("update", local_record_id))
        if payload.title in self.fail_titles:
            raise StoreError(
                f"Could not update record {local_record_id}", local_record_id
            )
        if local_record_id not in self.records:
            raise StoreError(f"Invalid record ID {local_record_id}", local_record_id)

        self.records[local_record_id] = payload
        return local_record_id

    def delete(self, local_record_id: int) -> bool:
        self.calls.append(("delete", local_record_id))
        if local_record_id in self.fail_deletes:
            return False
        return self.records.pop(local_record_id, None) is not None

    # -------------------------------------------------------------------
    #  ContentTypeRegistry interface
    # -------------------------------------------------------------------

    def content_type_exists(self, content_type: str) -> bool:
        return content_type in self.content_types

    def taxonomy_exists(self, taxonomy: str) -> bool:
        return any(taxonomy in taxes for taxes in self.content_types.values())

    def taxonomies_for(self, content_type: str) -> List[str]:
        return list(self.content_types.get(content_type, []))

    def calls_of(self, operation: str) -> List[int]:
        """Record ids passed to one kind of call, in order."""
        return [record_id for op, record_id in self.calls if op == operation]
