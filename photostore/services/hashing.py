"""Content hashing: SHA-256 digests used as photo identity on both sides of a sync."""

from __future__ import annotations

import hashlib
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

HASH_HEX_LENGTH = 64
_CHUNK_SIZE = 64 * 1024


def hash_bytes(content: bytes) -> str:
    """Compute SHA-256 hash of in-memory content."""
    return hashlib.sha256(content).hexdigest()


def hash_file(path: Path) -> str:
    """Compute SHA-256 hash of a file."""
    sha = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            sha.update(chunk)
    return sha.hexdigest()


def copy_and_hash(source: IO[bytes], destination: IO[bytes]) -> str:
    """Copy ``source`` into ``destination`` and return the digest of the copied bytes.

    The stream is read once; the hash is computed over exactly what was written.
    """
    sha = hashlib.sha256()
    for chunk in iter(lambda: source.read(_CHUNK_SIZE), b""):
        destination.write(chunk)
        sha.update(chunk)
    return sha.hexdigest()


def is_content_hash(value: str) -> bool:
    """Return True if ``value`` looks like a hex-encoded SHA-256 digest."""
    if len(value) != HASH_HEX_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)
