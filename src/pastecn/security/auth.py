"""Credential checks for protected snippets.

Both transports, a bearer password for API/CLI clients and a signed unlock
session for browsers, are verified against the same stored password hash.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Protocol

from pastecn.security.passwords import verify_password
from pastecn.security.sessions import verify_unlock_session
from pastecn.storage.repository import SnippetReader

LOGGER = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


class BearerAuthError(str, Enum):
    NO_AUTH_HEADER = "NO_AUTH_HEADER"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    NO_PASSWORD_HASH = "NO_PASSWORD_HASH"


@dataclass(slots=True, frozen=True)
class BearerAuthResult:
    success: bool
    error: Optional[BearerAuthError] = None


class Credential(Protocol):
    def verify(self, snippet_id: str, password_hash: str) -> bool:
        ...


@dataclass(slots=True, frozen=True)
class PasswordCredential:
    """Plaintext password from a bearer header or an unlock form."""

    password: str

    def verify(self, snippet_id: str, password_hash: str) -> bool:
        return verify_password(self.password, password_hash)

    def __repr__(self) -> str:
        return "PasswordCredential(password=***)"


@dataclass(slots=True, frozen=True)
class SessionCredential:
    """Unlock session token issued after a successful password check."""

    token: str
    secret: str

    def verify(self, snippet_id: str, password_hash: str) -> bool:
        return verify_unlock_session(self.token, snippet_id, secret=self.secret)

    def __repr__(self) -> str:
        return "SessionCredential(token=***)"


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def verify_bearer_auth(
    authorization: Optional[str], snippet_id: str, reader: SnippetReader
) -> BearerAuthResult:
    """Check ``Authorization: Bearer <password>`` for a protected snippet."""
    password = extract_bearer_token(authorization)
    if password is None:
        return BearerAuthResult(success=False, error=BearerAuthError.NO_AUTH_HEADER)

    password_hash = reader.password_hash(snippet_id)
    if not password_hash:
        LOGGER.error("Protected snippet %s has no password hash", snippet_id)
        return BearerAuthResult(success=False, error=BearerAuthError.NO_PASSWORD_HASH)

    if not PasswordCredential(password).verify(snippet_id, password_hash):
        LOGGER.info("Rejected bearer credential for snippet %s", snippet_id)
        return BearerAuthResult(success=False, error=BearerAuthError.INVALID_PASSWORD)

    return BearerAuthResult(success=True)


def get_client_ip(
    headers: Mapping[str, str],
    peer: Optional[str] = None,
    *,
    trust_proxy_headers: bool = True,
) -> str:
    """Address used to key rate limits.

    Proxy headers are client-controlled unless a proxy rewrites them, so with
    ``trust_proxy_headers`` off only the socket peer is used.
    """
    if trust_proxy_headers:
        forwarded = headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = headers.get("x-real-ip")
        if real_ip:
            return real_ip
    return peer or "unknown"
