"""Photo store configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EXTENSIONS = (".jpeg", ".jpg")


def default_photo_dir() -> Path:
    """Default store location under the user's home directory."""
    return Path.home() / ".photoframe" / "photos"


def normalize_extensions(values: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    """Lower-case extensions and make sure each one starts with a dot."""
    normalized: list[str] = []
    for value in values:
        ext = value.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = f".{ext}"
        if ext not in normalized:
            normalized.append(ext)
    if not normalized:
        raise ValueError("At least one eligible extension is required")
    return tuple(normalized)


class Settings(BaseSettings):
    """Photo store server settings."""

    model_config = SettingsConfigDict(
        env_prefix="PHOTOSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Storage
    photo_dir: Path = Field(default_factory=default_photo_dir)
    eligible_extensions: tuple[str, ...] = DEFAULT_EXTENSIONS

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)

    @field_validator("eligible_extensions")
    @classmethod
    def _normalize_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return normalize_extensions(value)
