"""Photo store endpoints: listing, download, upload and delete by content hash."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile as StarletteUploadFile

from photostore.api.deps import get_store
from photostore.exceptions import InvalidUploadError
from photostore.schemas.photo import PhotoResponse
from photostore.services.content_store import ContentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/photos", tags=["photos"])


@router.get("/list", response_model=list[PhotoResponse])
async def list_photos(
    store: Annotated[ContentStore, Depends(get_store)],
) -> list[PhotoResponse]:
    """Advertise the store's current inventory."""
    return [PhotoResponse.from_record(record) for record in store.list()]


# Registered before the /{photo_hash} routes so "list" is never taken for a hash.
@router.api_route("/list", methods=["POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def list_photos_method_not_allowed() -> None:
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
        headers={"Allow": "GET"},
    )


@router.get("/{photo_hash}")
async def download_photo(
    photo_hash: str,
    store: Annotated[ContentStore, Depends(get_store)],
) -> FileResponse:
    """Stream the file stored under ``photo_hash``."""
    path = store.get(photo_hash)
    if not path.is_file():
        logger.error("Index entry %s points at missing file %s", photo_hash[:8], path)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found")
    return FileResponse(path, media_type="image/jpeg")


@router.post(
    "/{photo_hash}",
    response_model=PhotoResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_photo(
    photo_hash: str,
    request: Request,
    store: Annotated[ContentStore, Depends(get_store)],
) -> PhotoResponse:
    """Store an uploaded photo.

    The path segment is ignored; the record is keyed by the hash of the
    uploaded bytes. The ``photo`` form field must carry a file part; a plain
    text value is rejected like a missing field.
    """
    async with request.form() as form:
        photo = form.get("photo")
        if not isinstance(photo, StarletteUploadFile):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing multipart field 'photo'",
            )
        try:
            filename = store.validate_filename(photo.filename)
        except InvalidUploadError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

        record = await asyncio.to_thread(store.add, filename, photo.file)
    return PhotoResponse.from_record(record)


@router.delete("/{photo_hash}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_photo(
    photo_hash: str,
    store: Annotated[ContentStore, Depends(get_store)],
) -> Response:
    """Delete the photo stored under ``photo_hash``."""
    await asyncio.to_thread(store.delete, photo_hash)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
