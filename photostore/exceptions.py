"""Photo store exception types.

Convention:
- ``StorageInitError`` is fatal at startup. The lifespan logs it at CRITICAL
  and re-raises so the server never runs on a partial index.
- ``PhotoNotFoundError`` maps to 404.
- ``InvalidUploadError`` is a ``ValueError`` whose message is safe to forward
  to clients; upload endpoints turn it into a 400.
- ``WriteError`` and ``DeleteError`` map to 500. Their details are logged
  server-side and never sent to clients.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for content store failures."""


class StorageInitError(StoreError):
    """Raised when the store directory cannot be created or scanned."""


class PhotoNotFoundError(StoreError, LookupError):
    """Raised when a content hash is not present in the index."""

    def __init__(self, photo_hash: str) -> None:
        super().__init__(f"Photo not found: {photo_hash}")
        self.photo_hash = photo_hash


class InvalidUploadError(StoreError, ValueError):
    """Raised when an upload is rejected before anything is written."""


class WriteError(StoreError):
    """Raised when an upload cannot be persisted."""


class DeleteError(StoreError):
    """Raised when a photo's backing file cannot be removed.

    The index entry is left in place when this is raised.
    """
