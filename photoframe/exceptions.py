"""Sync client exception types.

``ConnectionFailure`` grows the retry backoff; ``DecodeFailure`` aborts one
cycle and leaves the backoff alone; ``PerItemFailure`` describes a single
delete or download and never aborts a cycle.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync failures."""


class AlreadyInProgress(SyncError):
    """Raised when a sync is requested while another one is running."""

    def __init__(self) -> None:
        super().__init__("Sync already in progress")


class ConnectionFailure(SyncError):
    """The server could not be reached or did not answer in time."""


class DecodeFailure(SyncError):
    """The server answered, but not with a usable photo inventory."""


class RemoteStatusError(SyncError):
    """The server rejected a per-photo request."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"Server returned {status_code} for {url}")
        self.status_code = status_code
        self.url = url


class PerItemFailure(SyncError):
    """A single photo could not be deleted or downloaded."""

    def __init__(self, photo_hash: str, action: str, reason: str) -> None:
        super().__init__(f"Failed to {action} photo {photo_hash[:8]}: {reason}")
        self.photo_hash = photo_hash
        self.action = action
        self.reason = reason
