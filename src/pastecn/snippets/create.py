"""Snippet creation."""

from __future__ import annotations

import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from pastecn.errors import ApiErrorCode, CreateSnippetError
from pastecn.models import (
    CreateSnippetInput,
    CreateSnippetInputFile,
    CreateSnippetResult,
    ExpirationOption,
    RegistryDocument,
    RegistryFile,
    RegistryMeta,
    SnippetType,
)
from pastecn.security.passwords import MAX_PASSWORD_BYTES, hash_password
from pastecn.snippets.mapper import to_registry_type
from pastecn.storage.repository import SnippetRepository
from pastecn.utils.validation import SNIPPET_ID_LENGTH, validate_path

LOGGER = logging.getLogger(__name__)

ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-"
MAX_ID_ATTEMPTS = 3

EXPIRATION_DURATIONS: Dict[ExpirationOption, timedelta] = {
    ExpirationOption.TEN_SECONDS: timedelta(seconds=10),
    ExpirationOption.ONE_HOUR: timedelta(hours=1),
    ExpirationOption.ONE_DAY: timedelta(hours=24),
    ExpirationOption.ONE_WEEK: timedelta(days=7),
    ExpirationOption.THIRTY_DAYS: timedelta(days=30),
}

PUBLIC_EXPIRATIONS = tuple(option for option in ExpirationOption if option is not ExpirationOption.TEN_SECONDS)


def generate_snippet_id() -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(SNIPPET_ID_LENGTH))


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def calculate_expires_at(option: ExpirationOption, now: datetime) -> Optional[str]:
    if option is ExpirationOption.NEVER:
        return None
    return format_timestamp(now + EXPIRATION_DURATIONS[option])


def _fail(message: str) -> CreateSnippetError:
    return CreateSnippetError(ApiErrorCode.VALIDATION_ERROR, message)


def _validate_type(value: str) -> SnippetType:
    try:
        return SnippetType(value)
    except ValueError:
        allowed = ", ".join(item.value for item in SnippetType)
        raise _fail(f"Invalid type: {value}. Must be one of: {allowed}") from None


def _validate_files(files: List[CreateSnippetInputFile]) -> None:
    if not files:
        raise _fail("At least one file is required")
    for entry in files:
        if not entry.path or not isinstance(entry.path, str):
            raise _fail("Each file must have a path")
        if not validate_path(entry.path):
            raise _fail(f"Invalid path: {entry.path}")
        if entry.target and not validate_path(entry.target):
            raise _fail(f"Invalid target path: {entry.target}")
        if not isinstance(entry.content, str):
            raise _fail(f"File {entry.path} must have string content")


def _encoded_size(document: RegistryDocument) -> int:
    return len(json.dumps(document.to_dict(), ensure_ascii=False).encode("utf-8"))


def _validate_expiration(value: Optional[str], allow_test_expirations: bool) -> ExpirationOption:
    if not value:
        return ExpirationOption.NEVER
    allowed = list(ExpirationOption) if allow_test_expirations else list(PUBLIC_EXPIRATIONS)
    for option in allowed:
        if option.value == value:
            return option
    choices = " | ".join(option.value for option in allowed)
    raise _fail(f"Invalid expiresIn: {value}. Must be one of: {choices}")


def build_registry_document(
    snippet_input: CreateSnippetInput,
    *,
    now: datetime,
    allow_test_expirations: bool = False,
    max_content_bytes: Optional[int] = None,
) -> RegistryDocument:
    """Validate ``snippet_input`` and assemble the document to persist.

    With ``max_content_bytes`` set, a document whose stored JSON would be
    larger is rejected with a 413 ``VALIDATION_ERROR``.
    """
    if not isinstance(snippet_input.name, str) or not snippet_input.name.strip():
        raise _fail("Name is required")
    snippet_type = _validate_type(snippet_input.type)
    _validate_files(snippet_input.files)
    if snippet_input.password and len(snippet_input.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise _fail(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    expiration = _validate_expiration(snippet_input.expires_in, allow_test_expirations)

    registry_type = to_registry_type(snippet_type)
    meta = RegistryMeta()
    if snippet_input.password:
        meta.password_hash = hash_password(snippet_input.password)
    meta.expires_at = calculate_expires_at(expiration, now)

    document = RegistryDocument(
        name=snippet_input.name,
        type=registry_type,
        files=[
            RegistryFile(
                path=entry.path,
                type=registry_type,
                content=entry.content,
                target=entry.target or None,
            )
            for entry in snippet_input.files
        ],
        meta=None if meta.is_empty() else meta,
    )
    if max_content_bytes is not None and _encoded_size(document) > max_content_bytes:
        raise CreateSnippetError(ApiErrorCode.VALIDATION_ERROR, "Content too large", status=413)
    return document


def create_snippet(
    snippet_input: CreateSnippetInput,
    *,
    repository: SnippetRepository,
    base_url: str,
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = generate_snippet_id,
    allow_test_expirations: bool = False,
    max_content_bytes: Optional[int] = None,
) -> CreateSnippetResult:
    """Validate, assemble and store a new snippet under a fresh random ID.

    The document is built completely before the single write. A taken ID is
    retried with a new one up to ``MAX_ID_ATTEMPTS`` times, after which
    ``ID_COLLISION`` is raised for the caller to handle.
    """
    document = build_registry_document(
        snippet_input,
        now=now or datetime.now(timezone.utc),
        allow_test_expirations=allow_test_expirations,
        max_content_bytes=max_content_bytes,
    )

    snippet_id: Optional[str] = None
    for attempt in range(1, MAX_ID_ATTEMPTS + 1):
        candidate = id_factory()
        if repository.create(candidate, document):
            snippet_id = candidate
            break
        LOGGER.warning("Snippet ID collision on attempt %d/%d", attempt, MAX_ID_ATTEMPTS)

    if snippet_id is None:
        raise CreateSnippetError(ApiErrorCode.ID_COLLISION, "ID already exists")

    LOGGER.info(
        "Created snippet %s (%d files, protected=%s, expires=%s)",
        snippet_id,
        len(document.files),
        document.is_protected,
        document.expires_at or "never",
    )
    base = base_url.rstrip("/")
    return CreateSnippetResult(
        id=snippet_id,
        url=f"{base}/p/{snippet_id}",
        registry_url=f"{base}/r/{snippet_id}",
        password=snippet_input.password or None,
    )
