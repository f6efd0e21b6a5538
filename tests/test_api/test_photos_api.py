"""Tests for the photo store HTTP surface."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from photostore.config import Settings
from photostore.exceptions import StorageInitError
from photostore.main import open_store
from photostore.services.hashing import hash_bytes
from tests.conftest import create_test_client, make_jpeg

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from httpx import AsyncClient


@pytest.fixture
async def client(test_settings: Settings) -> AsyncGenerator[AsyncClient]:
    async with create_test_client(test_settings) as ac:
        yield ac


@pytest.fixture
def sunset() -> bytes:
    return make_jpeg(color=(250, 120, 30))


async def _upload(client: AsyncClient, filename: str, content: bytes) -> dict[str, object]:
    resp = await client.post(
        "/photos/ignored",
        files={"photo": (filename, content, "image/jpeg")},
    )
    assert resp.status_code == 201, resp.text
    data: dict[str, object] = resp.json()
    return data


class TestListPhotos:
    async def test_empty_store(self, client: AsyncClient) -> None:
        resp = await client.get("/photos/list")
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_lists_existing_files(self, tmp_photo_dir: Path, test_settings: Settings) -> None:
        content = make_jpeg()
        (tmp_photo_dir / "existing.jpg").write_bytes(content)

        async with create_test_client(test_settings) as ac:
            resp = await ac.get("/photos/list")

        assert resp.status_code == 200
        [photo] = resp.json()
        assert photo["hash"] == hash_bytes(content)
        assert photo["filename"] == "existing.jpg"
        assert "updated_at" in photo

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    async def test_other_methods_not_allowed(self, client: AsyncClient, method: str) -> None:
        resp = await client.request(method, "/photos/list")
        assert resp.status_code == 405
        assert resp.headers["allow"] == "GET"


class TestUploadPhoto:
    async def test_upload_returns_record(self, client: AsyncClient, sunset: bytes) -> None:
        data = await _upload(client, "sunset.jpg", sunset)
        assert data["hash"] == hash_bytes(sunset)
        assert data["filename"] == "sunset.jpg"

        listing = (await client.get("/photos/list")).json()
        assert [p["hash"] for p in listing] == [hash_bytes(sunset)]

    async def test_path_segment_is_ignored(self, client: AsyncClient, sunset: bytes) -> None:
        resp = await client.post(
            "/photos/" + "0" * 64,
            files={"photo": ("sunset.jpg", sunset, "image/jpeg")},
        )
        assert resp.status_code == 201
        assert resp.json()["hash"] == hash_bytes(sunset)

    async def test_missing_field(self, client: AsyncClient, sunset: bytes) -> None:
        resp = await client.post(
            "/photos/ignored",
            files={"image": ("sunset.jpg", sunset, "image/jpeg")},
        )
        assert resp.status_code == 400

    async def test_text_field_instead_of_file(self, client: AsyncClient) -> None:
        resp = await client.post("/photos/ignored", data={"photo": "not-a-file"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Missing multipart field 'photo'"

    async def test_text_field_in_multipart_body(self, client: AsyncClient, sunset: bytes) -> None:
        resp = await client.post(
            "/photos/ignored",
            data={"photo": "sunset.jpg"},
            files={"other": ("sunset.jpg", sunset, "image/jpeg")},
        )
        assert resp.status_code == 400
        assert (await client.get("/photos/list")).json() == []

    async def test_rejects_unsupported_extension(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/photos/ignored",
            files={"photo": ("notes.txt", b"hello", "text/plain")},
        )
        assert resp.status_code == 400
        assert "Unsupported file type" in resp.json()["detail"]

    async def test_rejects_reserved_prefix(self, client: AsyncClient, sunset: bytes) -> None:
        resp = await client.post(
            "/photos/ignored",
            files={"photo": ("tmp-sunset.jpg", sunset, "image/jpeg")},
        )
        assert resp.status_code == 400

    async def test_write_failure_is_500(self, client: AsyncClient, sunset: bytes) -> None:
        with patch(
            "photostore.services.content_store.os.replace",
            side_effect=OSError("disk full"),
        ):
            resp = await client.post(
                "/photos/ignored",
                files={"photo": ("sunset.jpg", sunset, "image/jpeg")},
            )
        assert resp.status_code == 500
        assert resp.json()["detail"] == "Failed to store photo"
        assert "disk full" not in resp.text


class TestDownloadPhoto:
    async def test_download_returns_bytes(self, client: AsyncClient, sunset: bytes) -> None:
        await _upload(client, "sunset.jpg", sunset)

        resp = await client.get(f"/photos/{hash_bytes(sunset)}")

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"
        assert resp.content == sunset

    async def test_unknown_hash(self, client: AsyncClient) -> None:
        resp = await client.get("/photos/" + "0" * 64)
        assert resp.status_code == 404

    async def test_file_removed_behind_index(
        self, client: AsyncClient, sunset: bytes, tmp_photo_dir: Path
    ) -> None:
        await _upload(client, "sunset.jpg", sunset)
        (tmp_photo_dir / "sunset.jpg").unlink()

        resp = await client.get(f"/photos/{hash_bytes(sunset)}")
        assert resp.status_code == 404


class TestDeletePhoto:
    async def test_delete(self, client: AsyncClient, sunset: bytes, tmp_photo_dir: Path) -> None:
        await _upload(client, "sunset.jpg", sunset)

        resp = await client.delete(f"/photos/{hash_bytes(sunset)}")

        assert resp.status_code == 204
        assert not (tmp_photo_dir / "sunset.jpg").exists()
        assert (await client.get("/photos/list")).json() == []
        assert (await client.get(f"/photos/{hash_bytes(sunset)}")).status_code == 404

    async def test_delete_unknown_hash(self, client: AsyncClient) -> None:
        resp = await client.delete("/photos/" + "0" * 64)
        assert resp.status_code == 404

    async def test_delete_failure_keeps_record(
        self, client: AsyncClient, sunset: bytes, tmp_photo_dir: Path
    ) -> None:
        await _upload(client, "sunset.jpg", sunset)
        (tmp_photo_dir / "sunset.jpg").unlink()

        resp = await client.delete(f"/photos/{hash_bytes(sunset)}")

        assert resp.status_code == 500
        listing = (await client.get("/photos/list")).json()
        assert [p["hash"] for p in listing] == [hash_bytes(sunset)]


class TestHealth:
    async def test_health(self, client: AsyncClient, sunset: bytes) -> None:
        await _upload(client, "sunset.jpg", sunset)

        resp = await client.get("/api/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": "0.1.0", "photos": 1}


class TestStartup:
    def test_unusable_photo_dir_is_fatal(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        blocker = tmp_path / "photos"
        blocker.write_text("not a directory")
        settings = Settings(_env_file=None, photo_dir=blocker)

        with (
            caplog.at_level(logging.CRITICAL, logger="photostore.main"),
            pytest.raises(StorageInitError),
        ):
            open_store(settings)

        assert "Failed to initialize photo store" in caplog.text
