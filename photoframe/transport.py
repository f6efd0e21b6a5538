"""Remote inventory transport: how the sync engine talks to the photo store."""

from __future__ import annotations

import logging
from typing import IO, Protocol

import httpx
from pydantic import TypeAdapter, ValidationError

from photoframe.exceptions import ConnectionFailure, DecodeFailure, RemoteStatusError
from photostore.schemas.photo import PhotoResponse as RemotePhoto

logger = logging.getLogger(__name__)

_INVENTORY = TypeAdapter(list[RemotePhoto])

__all__ = ["HttpInventoryTransport", "InventoryTransport", "RemotePhoto"]


class InventoryTransport(Protocol):
    """What the sync engine needs from the authoritative store."""

    def fetch_inventory(self) -> list[RemotePhoto]:
        """Return the store's current records.

        Raises ConnectionFailure when the store is unreachable and
        DecodeFailure when the answer is not an inventory.
        """
        ...

    def download(self, photo_hash: str, destination: IO[bytes]) -> None:
        """Write the content stored under ``photo_hash`` to ``destination``."""
        ...


class HttpInventoryTransport:
    """Inventory transport over the store's HTTP surface."""

    def __init__(
        self,
        server_url: str,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.client = client or httpx.Client(base_url=self.server_url, timeout=timeout)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> HttpInventoryTransport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def fetch_inventory(self) -> list[RemotePhoto]:
        try:
            resp = self.client.get("/photos/list")
        except httpx.TransportError as exc:
            raise ConnectionFailure(f"Server connection failed: {exc}") from exc

        if resp.status_code != httpx.codes.OK:
            raise DecodeFailure(f"Unexpected status {resp.status_code} from {resp.url}")
        try:
            return _INVENTORY.validate_json(resp.content)
        except ValidationError as exc:
            raise DecodeFailure(f"Malformed photo list: {exc.error_count()} error(s)") from exc

    def download(self, photo_hash: str, destination: IO[bytes]) -> None:
        try:
            with self.client.stream("GET", f"/photos/{photo_hash}") as resp:
                if resp.status_code != httpx.codes.OK:
                    raise RemoteStatusError(resp.status_code, str(resp.url))
                for chunk in resp.iter_bytes():
                    destination.write(chunk)
        except httpx.TransportError as exc:
            raise ConnectionFailure(f"Download of {photo_hash[:8]} failed: {exc}") from exc
