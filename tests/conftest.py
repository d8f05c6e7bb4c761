"""Shared test fixtures."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import pytest

from pastecn.security.passwords import hash_password
from pastecn.storage.blob import InMemoryBlobStore
from pastecn.storage.repository import SnippetRepository, snippet_key

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
PASSWORD = "x7QpRk2mN8vWz3Hd"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep settings from the host environment out of every test."""
    for name in list(os.environ):
        if name.startswith(("PASTECN_", "UNLOCK_SESSION_")):
            monkeypatch.delenv(name)


@pytest.fixture
def password() -> str:
    return PASSWORD


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture(scope="session")
def password_hash() -> str:
    """One bcrypt hash of PASSWORD shared by the whole run."""
    return hash_password(PASSWORD)


@pytest.fixture
def store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def repository(store: InMemoryBlobStore) -> SnippetRepository:
    return SnippetRepository(store)


@pytest.fixture
def registry_json() -> Callable[..., Dict[str, Any]]:
    """Build raw registry JSON with optional meta fields."""

    def build(
        *,
        name: str = "btn",
        type: str = "registry:component",
        files: list[dict[str, Any]] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "$schema": "https://ui.shadcn.com/schema/registry-item.json",
            "name": name,
            "type": type,
            "files": files
            if files is not None
            else [{"path": "components/btn.tsx", "type": type, "content": "export const X=1"}],
        }
        if meta is not None:
            data["meta"] = meta
        return data

    return build


@pytest.fixture
def put_raw(store: InMemoryBlobStore) -> Callable[[str, Any], None]:
    """Store arbitrary JSON (or bytes) under a snippet ID, bypassing validation."""

    def put(snippet_id: str, data: Any) -> None:
        payload = data if isinstance(data, bytes) else json.dumps(data).encode("utf-8")
        assert store.put_if_absent(snippet_key(snippet_id), payload) is not None

    return put
