"""Object store contract and the stores shipped with pastecn.

Stores are append-only: a key is written once with ``put_if_absent`` and
never overwritten, so readers can cache fetched content forever.
"""

from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable
from urllib.parse import unquote, urlparse

MEMORY_URL_PREFIX = "memory://"


class BlobNotFoundError(LookupError):
    """Raised by ``head`` and ``fetch`` when the object does not exist."""


class StorageError(RuntimeError):
    """Transport or I/O failure talking to the object store."""


@dataclass(slots=True, frozen=True)
class BlobInfo:
    key: str
    url: str
    size: int
    content_type: str = "application/json"


@runtime_checkable
class BlobStore(Protocol):
    """Key-value content store with create-if-absent writes."""

    def exists(self, key: str) -> bool:
        ...

    def head(self, key: str) -> BlobInfo:
        """Return object metadata or raise :class:`BlobNotFoundError`."""
        ...

    def fetch(self, url: str) -> bytes:
        """Return the bytes addressed by ``url`` (as returned from ``head``)."""
        ...

    def put_if_absent(
        self, key: str, data: bytes, *, content_type: str = "application/json"
    ) -> Optional[BlobInfo]:
        """Write ``data`` under ``key`` unless it exists; ``None`` means it did."""
        ...


class FilesystemBlobStore:
    """Blob store backed by a directory, one file per key."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        parts = [part for part in key.split("/") if part]
        if not parts or any(part in (".", "..") for part in parts):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.root.joinpath(*parts)

    def exists(self, key: str) -> bool:
        try:
            return self._path_for(key).is_file()
        except OSError as exc:
            raise StorageError(f"Unable to stat {key}") from exc

    def head(self, key: str) -> BlobInfo:
        path = self._path_for(key)
        try:
            size = path.stat().st_size
        except FileNotFoundError as exc:
            raise BlobNotFoundError(key) from exc
        except OSError as exc:
            raise StorageError(f"Unable to stat {key}") from exc
        return BlobInfo(key=key, url=path.resolve().as_uri(), size=size)

    def fetch(self, url: str) -> bytes:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise StorageError(f"Unsupported blob url: {url}")
        path = Path(unquote(parsed.path))
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise BlobNotFoundError(url) from exc
        except OSError as exc:
            raise StorageError(f"Unable to read {url}") from exc

    def put_if_absent(
        self, key: str, data: bytes, *, content_type: str = "application/json"
    ) -> Optional[BlobInfo]:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                # link() publishes the complete file and fails if the key exists.
                os.link(tmp_name, path)
            except FileExistsError:
                return None
            finally:
                os.unlink(tmp_name)
        except OSError as exc:
            raise StorageError(f"Unable to write {key}") from exc
        return BlobInfo(key=key, url=path.resolve().as_uri(), size=len(data), content_type=content_type)


class InMemoryBlobStore:
    """Process-local blob store for development and tests."""

    def __init__(self) -> None:
        self._objects: Dict[str, Tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    def exists(self, key: str) -> bool:
        return key in self._objects

    def head(self, key: str) -> BlobInfo:
        try:
            data, content_type = self._objects[key]
        except KeyError as exc:
            raise BlobNotFoundError(key) from exc
        return BlobInfo(key=key, url=MEMORY_URL_PREFIX + key, size=len(data), content_type=content_type)

    def fetch(self, url: str) -> bytes:
        if not url.startswith(MEMORY_URL_PREFIX):
            raise StorageError(f"Unsupported blob url: {url}")
        try:
            return self._objects[url[len(MEMORY_URL_PREFIX):]][0]
        except KeyError as exc:
            raise BlobNotFoundError(url) from exc

    def put_if_absent(
        self, key: str, data: bytes, *, content_type: str = "application/json"
    ) -> Optional[BlobInfo]:
        with self._lock:
            if key in self._objects:
                return None
            self._objects[key] = (bytes(data), content_type)
        return BlobInfo(key=key, url=MEMORY_URL_PREFIX + key, size=len(data), content_type=content_type)
