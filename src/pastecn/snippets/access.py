"""Per-request access decisions for stored snippets."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pastecn.models import RegistryDocument
from pastecn.security.auth import Credential
from pastecn.snippets.mapper import is_expired
from pastecn.utils.validation import parse_timestamp

ONE_YEAR_SECONDS = 31536000
PUBLIC_CACHE_CONTROL = f"public, max-age={ONE_YEAR_SECONDS}, immutable"
PRIVATE_CACHE_CONTROL = "private, no-store"


class AccessState(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"
    GRANTED = "GRANTED"


@dataclass(slots=True, frozen=True)
class AccessDecision:
    state: AccessState
    cache_control: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.state is AccessState.GRANTED


def cache_control_for(document: RegistryDocument, now: datetime) -> str:
    """Cache policy for a granted response.

    Protected content is never shareable. Public content is immutable, but a
    snippet with an expiry must not outlive it in shared caches: once
    ``expiresAt`` passes the snippet reads as not found, so max-age stops there
    instead of the full year.
    """
    if document.is_protected:
        return PRIVATE_CACHE_CONTROL
    if not document.expires_at:
        return PUBLIC_CACHE_CONTROL
    remaining = int((parse_timestamp(document.expires_at) - now).total_seconds())
    max_age = max(0, min(remaining, ONE_YEAR_SECONDS))
    return f"public, max-age={max_age}, immutable"


def decide_access(
    snippet_id: str,
    document: Optional[RegistryDocument],
    *,
    now: datetime,
    credential: Optional[Credential] = None,
) -> AccessDecision:
    """Decide what a request may see of ``document``.

    ``document`` is ``None`` when nothing valid is stored under the ID.
    """
    if document is None:
        return AccessDecision(AccessState.NOT_FOUND)
    if is_expired(document, now):
        return AccessDecision(AccessState.EXPIRED)
    if not document.is_protected:
        return AccessDecision(AccessState.GRANTED, cache_control_for(document, now))
    if credential is None:
        return AccessDecision(AccessState.AUTH_REQUIRED)
    if credential.verify(snippet_id, document.password_hash or ""):
        return AccessDecision(AccessState.GRANTED, PRIVATE_CACHE_CONTROL)
    return AccessDecision(AccessState.AUTH_INVALID)
