"""Shared test fixtures for the photo store and frame client."""

from __future__ import annotations

import io
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from photostore.config import Settings
from photostore.main import create_app, open_store

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path


def make_jpeg(
    size: tuple[int, int] = (32, 24),
    color: tuple[int, int, int] = (200, 40, 40),
) -> bytes:
    """Encode a solid-color JPEG. Distinct colors give distinct content hashes."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    return buf.getvalue()


@asynccontextmanager
async def create_test_client(settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with an initialized store.

    Opens the store the way the lifespan does, because ASGITransport does
    not trigger it.
    """
    app = create_app(settings)
    app.state.store = open_store(settings)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def tmp_photo_dir(tmp_path: Path) -> Path:
    """Create an empty store directory."""
    photos = tmp_path / "photos"
    photos.mkdir()
    return photos


@pytest.fixture
def test_settings(tmp_photo_dir: Path) -> Settings:
    """Create store settings pointing at the temporary directory."""
    return Settings(
        _env_file=None,
        debug=True,
        photo_dir=tmp_photo_dir,
    )
