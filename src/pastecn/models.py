"""Core pastecn data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

REGISTRY_SCHEMA_URL = "https://ui.shadcn.com/schema/registry-item.json"


class SnippetType(str, Enum):
    FILE = "file"
    COMPONENT = "component"
    HOOK = "hook"
    LIB = "lib"
    BLOCK = "block"


class ExpirationOption(str, Enum):
    TEN_SECONDS = "10s"  # local testing only
    ONE_HOUR = "1h"
    ONE_DAY = "24h"
    ONE_WEEK = "7d"
    THIRTY_DAYS = "30d"
    NEVER = "never"


@dataclass(slots=True)
class RegistryFile:
    """One file entry of a registry item."""

    path: str
    type: str
    content: str
    target: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryFile":
        return cls(
            path=data["path"],
            type=data["type"],
            content=data["content"],
            target=data.get("target"),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"path": self.path, "type": self.type, "content": self.content}
        if self.target:
            payload["target"] = self.target
        return payload


@dataclass(slots=True)
class RegistryMeta:
    """The ``meta`` side channel: two known fields plus pass-through extras."""

    password_hash: Optional[str] = None
    expires_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryMeta":
        extra = {k: v for k, v in data.items() if k not in ("passwordHash", "expiresAt")}
        return cls(
            password_hash=data.get("passwordHash"),
            expires_at=data.get("expiresAt"),
            extra=extra,
        )

    def to_dict(self, *, include_secrets: bool = True) -> Dict[str, Any]:
        payload = dict(self.extra)
        if self.password_hash and include_secrets:
            payload["passwordHash"] = self.password_hash
        if self.expires_at:
            payload["expiresAt"] = self.expires_at
        return payload

    def is_empty(self) -> bool:
        return not (self.password_hash or self.expires_at or self.extra)


@dataclass(slots=True)
class RegistryDocument:
    """A registry item as stored, one per snippet."""

    name: str
    type: str
    files: List[RegistryFile]
    meta: Optional[RegistryMeta] = None
    schema: str = REGISTRY_SCHEMA_URL

    @property
    def is_protected(self) -> bool:
        return bool(self.meta and self.meta.password_hash)

    @property
    def password_hash(self) -> Optional[str]:
        return self.meta.password_hash if self.meta else None

    @property
    def expires_at(self) -> Optional[str]:
        return self.meta.expires_at if self.meta else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryDocument":
        raw_meta = data.get("meta")
        return cls(
            name=data["name"],
            type=data["type"],
            files=[RegistryFile.from_dict(entry) for entry in data["files"]],
            meta=RegistryMeta.from_dict(raw_meta) if isinstance(raw_meta, dict) else None,
            schema=data.get("$schema", REGISTRY_SCHEMA_URL),
        )

    def to_dict(self, *, include_secrets: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "$schema": self.schema,
            "name": self.name,
            "type": self.type,
            "files": [entry.to_dict() for entry in self.files],
        }
        if self.meta is not None:
            meta = self.meta.to_dict(include_secrets=include_secrets)
            if meta:
                payload["meta"] = meta
        return payload


@dataclass(slots=True)
class SnippetInfo:
    primary_language: str
    file_count: int
    expires_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "primaryLanguage": self.primary_language,
            "fileCount": self.file_count,
        }
        if self.expires_at:
            payload["expiresAt"] = self.expires_at
        return payload


@dataclass(slots=True)
class SnippetMetadataFile:
    """File description without content, safe for unauthenticated callers."""

    path: str
    target: str
    language: str
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "target": self.target,
            "language": self.language,
            "type": self.type,
        }


@dataclass(slots=True)
class SnippetFile:
    path: str
    content: str
    target: str
    language: str
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "content": self.content,
            "target": self.target,
            "language": self.language,
            "type": self.type,
        }


@dataclass(slots=True)
class SnippetMetadata:
    id: str
    name: str
    type: SnippetType
    files: List[SnippetMetadataFile]
    meta: SnippetInfo
    is_protected: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "files": [entry.to_dict() for entry in self.files],
            "meta": self.meta.to_dict(),
            "isProtected": self.is_protected,
        }


@dataclass(slots=True)
class Snippet:
    """Full snippet including file content."""

    id: str
    name: str
    type: SnippetType
    files: List[SnippetFile]
    meta: SnippetInfo
    is_protected: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "files": [entry.to_dict() for entry in self.files],
            "meta": self.meta.to_dict(),
            "isProtected": self.is_protected,
        }


@dataclass(slots=True)
class CreateSnippetInputFile:
    path: str
    content: str
    target: Optional[str] = None


@dataclass(slots=True)
class CreateSnippetInput:
    name: str
    type: str
    files: List[CreateSnippetInputFile]
    password: Optional[str] = None
    expires_in: Optional[str] = None


@dataclass(slots=True)
class CreateSnippetResult:
    id: str
    url: str
    registry_url: str
    password: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "url": self.url, "registryUrl": self.registry_url}
        if self.password:
            payload["password"] = self.password
        return payload


@dataclass(slots=True, frozen=True)
class ExpirationStatus:
    exists: bool
    expired: bool
