"""Mapping between stored registry documents and the snippet domain model."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from pastecn.models import (
    ExpirationStatus,
    RegistryDocument,
    Snippet,
    SnippetFile,
    SnippetInfo,
    SnippetMetadata,
    SnippetMetadataFile,
    SnippetType,
)
from pastecn.utils.validation import parse_timestamp

REGISTRY_PREFIX = "registry:"

_REGISTRY_TYPES: Dict[str, SnippetType] = {
    "registry:file": SnippetType.FILE,
    "registry:component": SnippetType.COMPONENT,
    "registry:hook": SnippetType.HOOK,
    "registry:lib": SnippetType.LIB,
    "registry:block": SnippetType.BLOCK,
}

# Files inside a block are plain files.
_FILE_TYPES: Dict[str, str] = {
    "registry:file": "file",
    "registry:component": "component",
    "registry:hook": "hook",
    "registry:lib": "lib",
    "registry:block": "file",
}

_LANGUAGES: Dict[str, str] = {
    "tsx": "tsx",
    "ts": "ts",
    "jsx": "jsx",
    "js": "js",
    "md": "markdown",
}


def to_registry_type(snippet_type: SnippetType | str) -> str:
    value = snippet_type.value if isinstance(snippet_type, SnippetType) else snippet_type
    return f"{REGISTRY_PREFIX}{value}"


def map_registry_type(registry_type: str) -> SnippetType:
    """Unknown registry types read as generic files."""
    return _REGISTRY_TYPES.get(registry_type, SnippetType.FILE)


def map_file_type(registry_type: str) -> str:
    return _FILE_TYPES.get(registry_type, "file")


def infer_language(path: str) -> str:
    extension = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return _LANGUAGES.get(extension, "text")


def _metadata_files(document: RegistryDocument) -> List[SnippetMetadataFile]:
    files = []
    for entry in document.files:
        target = entry.target or entry.path
        files.append(
            SnippetMetadataFile(
                path=entry.path,
                target=target,
                language=infer_language(target),
                type=map_file_type(entry.type),
            )
        )
    return files


def _info(document: RegistryDocument, languages: List[str]) -> SnippetInfo:
    return SnippetInfo(
        primary_language=languages[0] if languages else "text",
        file_count=len(languages),
        expires_at=document.expires_at,
    )


def to_snippet_metadata(snippet_id: str, document: RegistryDocument) -> SnippetMetadata:
    """Content-free projection, safe to return for protected snippets."""
    files = _metadata_files(document)
    return SnippetMetadata(
        id=snippet_id,
        name=document.name,
        type=map_registry_type(document.type),
        files=files,
        meta=_info(document, [entry.language for entry in files]),
        is_protected=document.is_protected,
    )


def to_snippet(snippet_id: str, document: RegistryDocument) -> Snippet:
    files = [
        SnippetFile(
            path=described.path,
            content=entry.content,
            target=described.target,
            language=described.language,
            type=described.type,
        )
        for entry, described in zip(document.files, _metadata_files(document))
    ]
    return Snippet(
        id=snippet_id,
        name=document.name,
        type=map_registry_type(document.type),
        files=files,
        meta=_info(document, [entry.language for entry in files]),
        is_protected=document.is_protected,
    )


def is_expired(document: RegistryDocument, now: datetime) -> bool:
    """True once ``now`` reaches ``meta.expiresAt``; never without it."""
    if not document.expires_at:
        return False
    return now >= parse_timestamp(document.expires_at)


def expiration_status(document: RegistryDocument | None, now: datetime) -> ExpirationStatus:
    if document is None:
        return ExpirationStatus(exists=False, expired=False)
    return ExpirationStatus(exists=True, expired=is_expired(document, now))


def to_public_registry_json(document: RegistryDocument) -> Dict[str, Any]:
    """Registry item as served to the shadcn CLI, without the password hash."""
    return document.to_dict(include_secrets=False)
