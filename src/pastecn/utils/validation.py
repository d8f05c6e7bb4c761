"""Validation helpers for snippet IDs, file paths and stored registry JSON."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

SNIPPET_ID_LENGTH = 8
MAX_PATH_LENGTH = 255

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{%d}$" % SNIPPET_ID_LENGTH)
_PATH_CHARS = re.compile(r"^[A-Za-z0-9._\-/@+()\[\] ]+$")
_BCRYPT_PATTERN = re.compile(r"^\$2[aby]\$\d{2}\$[./A-Za-z0-9]{53}$")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")
_HOME_PREFIX = "~/"


def strip_json_suffix(raw_id: str) -> str:
    """Drop a trailing ``.json`` the shadcn CLI may append to registry URLs."""
    return raw_id[: -len(".json")] if raw_id.endswith(".json") else raw_id


def validate_id(snippet_id: Any) -> bool:
    return isinstance(snippet_id, str) and _ID_PATTERN.match(snippet_id) is not None


def validate_path(path: Any) -> bool:
    """Return True for a relative project path that cannot escape its root.

    ``~/`` is accepted as a leading home marker (``~/AGENTS.md``).
    """
    if not isinstance(path, str) or not path or len(path) > MAX_PATH_LENGTH:
        return False
    if "\0" in path or "\\" in path:
        return False
    if path.startswith("/") or _DRIVE_PREFIX.match(path):
        return False

    body = path[len(_HOME_PREFIX):] if path.startswith(_HOME_PREFIX) else path
    if not body or "~" in body:
        return False
    if not _PATH_CHARS.match(body):
        return False

    segments = body.split("/")
    if any(segment == ".." for segment in segments):
        return False
    return segments[-1] not in ("", ".")


def validate_password_hash(value: Any) -> bool:
    return isinstance(value, str) and _BCRYPT_PATTERN.match(value) is not None


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _valid_file(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    if not isinstance(entry.get("type"), str) or not isinstance(entry.get("content"), str):
        return False
    if not validate_path(entry.get("path")):
        return False
    target = entry.get("target")
    return target is None or validate_path(target)


def _valid_meta(meta: Any) -> bool:
    if meta is None:
        return True
    if not isinstance(meta, dict):
        return False
    if "passwordHash" in meta and not validate_password_hash(meta["passwordHash"]):
        return False
    if "expiresAt" in meta:
        expires_at = meta["expiresAt"]
        if not isinstance(expires_at, str):
            return False
        try:
            parse_timestamp(expires_at)
        except ValueError:
            return False
    return True


def validate_registry_json(data: Any) -> bool:
    """Structural check applied to every stored document before it is served."""
    if not isinstance(data, dict):
        return False
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        return False
    if not isinstance(data.get("type"), str):
        return False
    files = data.get("files")
    if not isinstance(files, list) or not files:
        return False
    if not all(_valid_file(entry) for entry in files):
        return False
    return _valid_meta(data.get("meta"))
