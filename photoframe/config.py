"""Photo frame client configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from photostore.config import DEFAULT_EXTENSIONS, normalize_extensions


def default_frame_dir() -> Path:
    """Default replica location under the user's home directory."""
    return Path.home() / ".photoframe"


class FrameSettings(BaseSettings):
    """Photo frame client settings."""

    model_config = SettingsConfigDict(
        env_prefix="PHOTOFRAME_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Remote store
    server_url: str = "http://localhost:8080"
    request_timeout: float = Field(default=30.0, gt=0)

    # Local replica
    photo_dir: Path = Field(default_factory=default_frame_dir)
    eligible_extensions: tuple[str, ...] = DEFAULT_EXTENSIONS

    # Scheduling (seconds)
    sync_interval: float = Field(default=300.0, gt=0)
    backoff_base: float = Field(default=60.0, gt=0)
    backoff_max: float = Field(default=3600.0, gt=0)

    # Working set
    load_concurrency: int = Field(default=4, ge=1, le=64)
    max_width: int = Field(default=1920, ge=1)
    max_height: int = Field(default=1080, ge=1)
    watch: bool = False

    @field_validator("server_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("eligible_extensions")
    @classmethod
    def _normalize_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return normalize_extensions(value)

    def validate_backoff(self) -> None:
        """Reject a backoff ceiling below its base."""
        if self.backoff_max < self.backoff_base:
            raise ValueError(
                f"backoff_max ({self.backoff_max}) must be >= backoff_base ({self.backoff_base})"
            )
