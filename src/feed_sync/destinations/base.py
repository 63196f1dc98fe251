"""
Destination-side interfaces.

The sync core talks to the destination content store only through these
narrow interfaces:

- ``DestinationStore`` -- create, update and delete records.
- ``ContentTypeRegistry`` -- which content types and taxonomies exist.
- ``SyncHooks`` -- best-effort side effects after a successful write.
"""

import logging
from abc import ABC, abstractmethod
from typing import List

from feed_sync.models.entities import DestinationPayload

logger = logging.getLogger(__name__)


class DestinationStore(ABC):
    """Abstract base class for destination content stores."""

    @abstractmethod
    def create(self, payload: DestinationPayload) -> int:
        """
        Create a record.

        Returns:
            Id of the new record (always > 0)

        Raises:
            StoreError: If the record could not be created
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, local_record_id: int, payload: DestinationPayload) -> int:
        """
        Replace an existing record's content.

        Returns:
            Id of the updated record

        Raises:
            StoreError: If the record could not be updated
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, local_record_id: int) -> bool:
        """
        Permanently delete a record.

        Returns:
            True if the record was deleted
        """
        raise NotImplementedError


class ContentTypeRegistry(ABC):
    """Abstract base class answering content type and taxonomy questions."""

    @abstractmethod
    def content_type_exists(self, content_type: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def taxonomy_exists(self, taxonomy: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def taxonomies_for(self, content_type: str) -> List[str]:
        """Taxonomies attached to a content type."""
        raise NotImplementedError


class SyncHooks(ABC):
    """
    Side effects run after a record was created or updated.

    Hooks are best effort: the engine logs any exception they raise and
    leaves the entry's outcome unchanged.
    """

    @abstractmethod
    def import_media(self, local_record_id: int, body: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def normalize_template(self, local_record_id: int, content_type: str) -> None:
        raise NotImplementedError


class NullHooks(SyncHooks):
    """Hooks that do nothing."""

    def import_media(self, local_record_id: int, body: str) -> None:
        logger.debug("Media import disabled for record %d", local_record_id)

    def normalize_template(self, local_record_id: int, content_type: str) -> None:
        pass
