"""Snippet persistence on top of a blob store."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, Optional, Set

from pastecn.models import ExpirationStatus, RegistryDocument, Snippet, SnippetMetadata
from pastecn.snippets.mapper import expiration_status, to_snippet, to_snippet_metadata
from pastecn.storage.blob import BlobNotFoundError, BlobStore
from pastecn.utils.validation import validate_registry_json

LOGGER = logging.getLogger(__name__)

SNIPPET_PREFIX = "snippets/"
CONTENT_TYPE = "application/json"


def snippet_key(snippet_id: str) -> str:
    return f"{SNIPPET_PREFIX}{snippet_id}.json"


def snippet_tag(snippet_id: str) -> str:
    return f"snippet-{snippet_id}"


class ContentCache:
    """Cache of immutable blob content.

    Entries never expire; ``purge_tag`` is the only way to drop them.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, bytes] = {}
        self._tags: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[bytes]:
        return self._entries.get(key)

    def put(self, key: str, data: bytes, *, tags: Iterable[str] = ()) -> None:
        with self._lock:
            self._entries[key] = data
            for tag in tags:
                self._tags.setdefault(tag, set()).add(key)

    def purge_tag(self, tag: str) -> int:
        with self._lock:
            keys = self._tags.pop(tag, set())
            for key in keys:
                self._entries.pop(key, None)
        return len(keys)


class SnippetRepository:
    """Reads and writes registry documents keyed by snippet ID."""

    def __init__(self, store: BlobStore, cache: ContentCache | None = None) -> None:
        self.store = store
        self.cache = cache if cache is not None else ContentCache()

    def exists(self, snippet_id: str) -> bool:
        return self.store.exists(snippet_key(snippet_id))

    def _fetch_bytes(self, snippet_id: str) -> Optional[bytes]:
        key = snippet_key(snippet_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        try:
            info = self.store.head(key)
            data = self.store.fetch(info.url)
        except BlobNotFoundError:
            return None
        self.cache.put(key, data, tags=(snippet_tag(snippet_id),))
        return data

    def fetch_document(self, snippet_id: str) -> Optional[RegistryDocument]:
        """Return the stored document, or ``None`` when missing or corrupt.

        Storage faults are not swallowed.
        """
        data = self._fetch_bytes(snippet_id)
        if data is None:
            return None
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            LOGGER.error("Stored snippet %s is not valid JSON", snippet_id)
            return None
        if not validate_registry_json(raw):
            LOGGER.error("Invalid registry JSON structure or unsafe paths for snippet %s", snippet_id)
            return None
        return RegistryDocument.from_dict(raw)

    def create(self, snippet_id: str, document: RegistryDocument) -> bool:
        """Persist ``document`` unless the ID is taken. Returns False on collision."""
        payload = json.dumps(document.to_dict(), ensure_ascii=False).encode("utf-8")
        info = self.store.put_if_absent(snippet_key(snippet_id), payload, content_type=CONTENT_TYPE)
        return info is not None


class SnippetReader:
    """Request-scoped view of the repository.

    Memoizes document lookups so several reads within one request hit the
    store once.
    """

    def __init__(self, repository: SnippetRepository) -> None:
        self.repository = repository
        self._documents: Dict[str, Optional[RegistryDocument]] = {}

    def document(self, snippet_id: str) -> Optional[RegistryDocument]:
        if snippet_id not in self._documents:
            self._documents[snippet_id] = self.repository.fetch_document(snippet_id)
        return self._documents[snippet_id]

    def snippet(self, snippet_id: str) -> Optional[Snippet]:
        document = self.document(snippet_id)
        return to_snippet(snippet_id, document) if document else None

    def metadata(self, snippet_id: str) -> Optional[SnippetMetadata]:
        document = self.document(snippet_id)
        return to_snippet_metadata(snippet_id, document) if document else None

    def password_hash(self, snippet_id: str) -> Optional[str]:
        """Server-side only; never include the result in a response."""
        document = self.document(snippet_id)
        return document.password_hash if document else None

    def expiration_status(self, snippet_id: str, now: datetime) -> ExpirationStatus:
        return expiration_status(self.document(snippet_id), now)
