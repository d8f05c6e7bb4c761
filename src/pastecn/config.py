"""Application settings read from the environment."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SESSION_SECRET = "dev-secret-change-in-production"
DEFAULT_BASE_URL = "http://127.0.0.1:8000"
DEFAULT_MAX_CONTENT_BYTES = 4 * 1024 * 1024


class AppConfig(BaseSettings):
    """Runtime configuration.

    Fields map to ``PASTECN_<FIELD>`` variables; the unlock session settings
    keep their ``UNLOCK_SESSION_*`` names.
    """

    model_config = SettingsConfigDict(
        env_prefix="PASTECN_",
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    data_dir: Path = Path("data")
    base_url: str = DEFAULT_BASE_URL
    session_secret: str = Field(
        default=DEFAULT_SESSION_SECRET, validation_alias="UNLOCK_SESSION_SECRET"
    )
    session_duration_hours: int = Field(
        default=24, ge=1, validation_alias="UNLOCK_SESSION_DURATION_HOURS"
    )
    secure_cookies: bool = False
    allow_test_expirations: bool = False
    unlock_max_attempts: int = Field(default=5, ge=1)
    unlock_window_seconds: int = Field(default=15 * 60, ge=1)
    max_content_bytes: int = Field(default=DEFAULT_MAX_CONTENT_BYTES, ge=1)
    # Only enable behind a proxy that overwrites X-Forwarded-For.
    trust_proxy_headers: bool = False

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def uses_default_secret(self) -> bool:
        return self.session_secret == DEFAULT_SESSION_SECRET

    def resolve_data_dir(self, base_dir: Path | None = None) -> Path:
        if self.data_dir.is_absolute() or base_dir is None:
            return self.data_dir
        return base_dir / self.data_dir
