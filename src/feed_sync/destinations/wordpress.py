"""
WordPress REST API destination.

Creates, updates and deletes records through ``/wp-json/wp/v2`` using an
application password, and answers content type / taxonomy questions from
the ``types`` and ``taxonomies`` endpoints.

API Documentation: https://developer.wordpress.org/rest-api/reference/

Example:
    >>> client = WordPressClient("https://example.com", "editor", "xxxx xxxx xxxx")
    >>> record_id = client.create(payload)
    >>> hooks = WordPressHooks(client)
    >>> hooks.import_media(record_id, payload.body)
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from feed_sync.destinations.base import ContentTypeRegistry, DestinationStore, SyncHooks
from feed_sync.exceptions import HookError, StoreError
from feed_sync.models.entities import DestinationPayload

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

API_PATH = "/wp-json/wp/v2"
REQUEST_TIMEOUT = 30  # seconds
MEDIA_TIMEOUT = 60  # seconds

_IMG_SRC_RE = re.compile(r"""<img\b[^>]*?\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)


class WordPressClient(DestinationStore, ContentTypeRegistry):
    """
    Destination store backed by the WordPress REST API.

    Records are addressed by id only, but REST routes are per content type.
    Calls on an existing record try ``preferred_content_type`` first and
    then every other REST-enabled type until one does not answer 404.

    Attributes:
        base_url: Site URL without trailing slash
        preferred_content_type: Content type tried first for id-only calls
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        app_password: str,
        preferred_content_type: str = "post",
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.preferred_content_type = preferred_content_type
        self.timeout = timeout
        self.session = requests.Session()
        self.session.auth = (username, app_password)
        self._types: Optional[Dict[str, Dict[str, Any]]] = None
        self._taxonomies: Optional[Dict[str, Dict[str, Any]]] = None

    # -------------------------------------------------------------------
    #  DestinationStore interface
    # -------------------------------------------------------------------

    def create(self, payload: DestinationPayload) -> int:
        rest_base = self._rest_base(payload.content_type)
        data = self._request("POST", f"/{rest_base}", json=self._payload_body(payload))
        record_id = int(data.get("id") or 0)
        if record_id <= 0:
            raise StoreError("WordPress did not return a record id")
        logger.debug("Created %s %d", payload.content_type, record_id)
        return record_id

    def update(self, local_record_id: int, payload: DestinationPayload) -> int:
        rest_base = self._rest_base(payload.content_type)
        try:
            data = self._request(
                "POST",
                f"/{rest_base}/{local_record_id}",
                json=self._payload_body(payload),
            )
        except StoreError as exc:
            raise StoreError(str(exc), local_record_id) from exc
        return int(data.get("id") or local_record_id)

    def delete(self, local_record_id: int) -> bool:
        try:
            self.record_request(
                "DELETE", local_record_id, params={"force": "true"}
            )
        except StoreError as exc:
            logger.warning("Could not delete record %d: %s", local_record_id, exc)
            return False
        return True

    # -------------------------------------------------------------------
    #  ContentTypeRegistry interface
    # -------------------------------------------------------------------

    def content_type_exists(self, content_type: str) -> bool:
        return content_type in self._load_types()

    def taxonomy_exists(self, taxonomy: str) -> bool:
        return taxonomy in self._load_taxonomies()

    def taxonomies_for(self, content_type: str) -> List[str]:
        return list(self._load_types().get(content_type, {}).get("taxonomies", []))

    # -------------------------------------------------------------------
    #  Record helpers
    # -------------------------------------------------------------------

    def record_request(self, method: str, local_record_id: int, **kwargs: Any) -> Dict[str, Any]:
        """
        Send a request to an existing record, whatever its content type.

        Raises:
            StoreError: If no content type route knows the record, or the
                request fails for another reason
        """
        candidates = [self.preferred_content_type] + [
            name for name in self._load_types() if name != self.preferred_content_type
        ]
        for content_type in candidates:
            rest_base = self._rest_base(content_type)
            try:
                return self._request(method, f"/{rest_base}/{local_record_id}", **kwargs)
            except _NotFound:
                continue
        raise StoreError(f"Record {local_record_id} not found", local_record_id)

    def upload_media(self, local_record_id: int, filename: str, content: bytes, mime_type: str) -> int:
        """Upload a file to the media library attached to a record."""
        data = self._request(
            "POST",
            "/media",
            params={"post": local_record_id},
            data=content,
            headers={
                "Content-Disposition": f'attachment; filename="{filename}"',
                "Content-Type": mime_type,
            },
        )
        return int(data.get("id") or 0)

    # -------------------------------------------------------------------
    #  Internal API methods
    # -------------------------------------------------------------------

    def _payload_body(self, payload: DestinationPayload) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "title": payload.title,
            "content": payload.body,
            "status": payload.status,
            "author": payload.author,
            "date": payload.publish_date.replace(" ", "T"),
        }
        if payload.taxonomy_key and payload.category_ids:
            taxonomy = self._load_taxonomies().get(payload.taxonomy_key, {})
            field = taxonomy.get("rest_base") or payload.taxonomy_key
            body[field] = list(payload.category_ids)
        return body

    def _rest_base(self, content_type: str) -> str:
        info = self._load_types().get(content_type, {})
        return info.get("rest_base") or content_type

    def _load_types(self) -> Dict[str, Dict[str, Any]]:
        if self._types is None:
            self._types = self._request("GET", "/types")
        return self._types

    def _load_taxonomies(self) -> Dict[str, Dict[str, Any]]:
        if self._taxonomies is None:
            self._taxonomies = self._request("GET", "/taxonomies")
        return self._taxonomies

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{API_PATH}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as exc:
            raise StoreError(f"WordPress request timed out: {method} {path}") from exc
        except requests.exceptions.RequestException as exc:
            raise StoreError(f"WordPress request failed: {exc}") from exc

        if response.status_code == 404:
            raise _NotFound(f"{method} {path}: not found")
        if response.status_code >= 400:
            raise StoreError(
                f"WordPress API error {response.status_code}: {_error_message(response)}"
            )
        return response.json()


class _NotFound(StoreError):
    """The route or record does not exist."""


def _error_message(response: requests.Response) -> str:
    """Extract the ``message`` of a WordPress error response."""
    try:
        return response.json().get("message") or response.reason
    except ValueError:
        return response.reason or response.text[:200]


class WordPressHooks(SyncHooks):
    """
    Post-sync side effects for WordPress.

    ``import_media`` sideloads every ``<img>`` in the body into the media
    library and makes the first one the featured image.
    ``normalize_template`` resets records of the report type to the
    default page template.
    """

    def __init__(self, client: WordPressClient, template_content_type: str = "reports") -> None:
        self.client = client
        self.template_content_type = template_content_type

    def import_media(self, local_record_id: int, body: str) -> None:
        featured_set = False
        failures = []

        for src in extract_image_urls(body):
            try:
                media_id = self._sideload(local_record_id, src)
            except (requests.exceptions.RequestException, StoreError) as exc:
                logger.warning("Could not import image %s: %s", src, exc)
                failures.append(src)
                continue

            if media_id and not featured_set:
                try:
                    self.client.record_request(
                        "POST", local_record_id, json={"featured_media": media_id}
                    )
                except StoreError as exc:
                    logger.warning("Could not set featured image %s: %s", src, exc)
                    failures.append(src)
                    continue
                featured_set = True

        if failures:
            raise HookError(
                f"{len(failures)} image(s) failed to import for record {local_record_id}"
            )

    def normalize_template(self, local_record_id: int, content_type: str) -> None:
        if content_type != self.template_content_type:
            return
        self.client.record_request("POST", local_record_id, json={"template": ""})

    def _sideload(self, local_record_id: int, src: str) -> int:
        response = requests.get(src, timeout=MEDIA_TIMEOUT)
        response.raise_for_status()
        filename = os.path.basename(urlparse(src).path) or "image"
        mime_type = response.headers.get("Content-Type", "application/octet-stream")
        return self.client.upload_media(local_record_id, filename, response.content, mime_type)


def extract_image_urls(body: str) -> List[str]:
    """
    Absolute http(s) image URLs in an HTML body, in document order.

    Duplicates are returned once.
    """
    urls: List[str] = []
    for src in _IMG_SRC_RE.findall(body or ""):
        parsed = urlparse(src)
        if parsed.scheme in ("http", "https") and parsed.netloc and src not in urls:
            urls.append(src)
    return urls
