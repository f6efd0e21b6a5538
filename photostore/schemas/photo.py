"""Photo-related schemas."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from photostore.services.content_store import PhotoRecord


class PhotoResponse(BaseModel):
    """Photo record as advertised in listings and upload responses."""

    hash: str = Field(min_length=64, max_length=64, pattern=r"^[0-9a-f]{64}$")
    filename: str = Field(min_length=1)
    updated_at: datetime

    @classmethod
    def from_record(cls, record: PhotoRecord) -> PhotoResponse:
        return cls(hash=record.hash, filename=record.filename, updated_at=record.updated_at)


class HealthResponse(BaseModel):
    """Health check payload."""

    status: str
    version: str
    photos: int = Field(ge=0)
