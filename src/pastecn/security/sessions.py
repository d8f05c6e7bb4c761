"""Signed unlock sessions for the browser flow.

A session is a short-lived HS256 JWT naming one snippet. Nothing is stored
server side, so a session stays valid until it expires.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

ALGORITHM = "HS256"
UNLOCK_PURPOSE = "unlock"
COOKIE_PREFIX = "unlock_"


def create_unlock_session(
    snippet_id: str,
    *,
    secret: str,
    duration_hours: int = 24,
    now: Optional[datetime] = None,
) -> str:
    issued = now or datetime.now(timezone.utc)
    claims = {
        "snippetId": snippet_id,
        "type": UNLOCK_PURPOSE,
        "iat": issued,
        "exp": issued + timedelta(hours=duration_hours),
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def verify_unlock_session(token: str, snippet_id: str, *, secret: str) -> bool:
    """True only for an unexpired unlock token issued for ``snippet_id``."""
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except (JWTError, AttributeError, TypeError, ValueError):
        return False
    return claims.get("snippetId") == snippet_id and claims.get("type") == UNLOCK_PURPOSE


def unlock_cookie_name(snippet_id: str) -> str:
    return f"{COOKIE_PREFIX}{snippet_id}"


def session_duration_seconds(duration_hours: int) -> int:
    return duration_hours * 60 * 60
