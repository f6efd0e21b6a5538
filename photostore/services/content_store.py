"""Content-addressed photo store: files on disk, hash index in memory."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO

from photostore.config import DEFAULT_EXTENSIONS
from photostore.exceptions import (
    DeleteError,
    InvalidUploadError,
    PhotoNotFoundError,
    StorageInitError,
    WriteError,
)
from photostore.services.hashing import copy_and_hash, hash_file
from photostore.services.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

TEMP_PREFIX = "tmp-"


@dataclass(frozen=True)
class PhotoRecord:
    """A stored photo, keyed by the SHA-256 of its content."""

    hash: str
    filename: str
    updated_at: datetime
    relative_path: str = ""

    @property
    def location(self) -> str:
        """Path of the backing file relative to the store directory."""
        return self.relative_path or self.filename


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)


def is_eligible(name: str, extensions: tuple[str, ...]) -> bool:
    """Return True if ``name`` can back a record in a store or replica directory."""
    if name.startswith((TEMP_PREFIX, ".")):
        return False
    return Path(name).suffix.lower() in extensions


class ContentStore:
    """Durable map from content hash to file, with an in-memory index.

    The index is derived state: it is rebuilt by scanning ``base_dir`` and is
    never persisted. List/Get take the read lock; Add/Delete take the write
    lock only around the index update, never around file I/O. A separate
    mutation lock orders each rename or unlink with its index update, so the
    index never names a hash for content that is no longer on disk. Readers
    never wait on it.
    """

    def __init__(
        self,
        base_dir: Path,
        extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
    ) -> None:
        self.base_dir = base_dir
        self.extensions = extensions
        self._lock = ReadWriteLock()
        self._mutation_lock = threading.Lock()
        self._index: dict[str, PhotoRecord] = {}

    @classmethod
    def open(
        cls,
        base_dir: Path,
        extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
    ) -> ContentStore:
        """Create a store and build its index from ``base_dir``."""
        store = cls(base_dir, extensions)
        store.initialize()
        return store

    # ── Startup / rescan ────────────────────────────────

    def initialize(self) -> None:
        """Ensure the base directory exists and index every eligible file in it.

        A single unreadable file aborts initialization; there is no partial index.
        """
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageInitError(
                f"Cannot create photo directory {self.base_dir}: {exc}"
            ) from exc
        if not self.base_dir.is_dir():
            raise StorageInitError(f"Photo path is not a directory: {self.base_dir}")

        index = self._scan()
        with self._lock.write_locked():
            self._index = index
        logger.info("Indexed %d photos in %s", len(index), self.base_dir)

    def rescan(self) -> None:
        """Rebuild the index from disk, dropping records whose file is gone."""
        index = self._scan()
        with self._lock.write_locked():
            dropped = set(self._index) - set(index)
            self._index = index
        for photo_hash in dropped:
            logger.info("Rescan dropped photo %s", photo_hash[:8])

    def _scan(self) -> dict[str, PhotoRecord]:
        index: dict[str, PhotoRecord] = {}
        try:
            for root, _dirs, files in os.walk(self.base_dir, onerror=_raise):
                for name in files:
                    if not is_eligible(name, self.extensions):
                        continue
                    path = Path(root) / name
                    photo_hash = hash_file(path)
                    index[photo_hash] = PhotoRecord(
                        hash=photo_hash,
                        filename=name,
                        updated_at=_mtime(path),
                        relative_path=path.relative_to(self.base_dir).as_posix(),
                    )
        except OSError as exc:
            raise StorageInitError(f"Failed to scan {self.base_dir}: {exc}") from exc
        return index

    # ── Queries ─────────────────────────────────────────

    def list(self) -> list[PhotoRecord]:
        """Return a snapshot of every record, in no particular order."""
        with self._lock.read_locked():
            return list(self._index.values())

    def get(self, photo_hash: str) -> Path:
        """Return the backing file path for ``photo_hash``.

        The index is trusted; the filesystem is not consulted.
        """
        with self._lock.read_locked():
            record = self._index.get(photo_hash)
        if record is None:
            raise PhotoNotFoundError(photo_hash)
        return self.base_dir / record.location

    def record(self, photo_hash: str) -> PhotoRecord:
        """Return the record for ``photo_hash``."""
        with self._lock.read_locked():
            record = self._index.get(photo_hash)
        if record is None:
            raise PhotoNotFoundError(photo_hash)
        return record

    def __contains__(self, photo_hash: object) -> bool:
        with self._lock.read_locked():
            return photo_hash in self._index

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._index)

    # ── Mutations ───────────────────────────────────────

    def validate_filename(self, filename: str | None) -> str:
        """Return ``filename`` if it can be stored, else raise InvalidUploadError."""
        if not filename:
            raise InvalidUploadError("Upload has no filename")
        if filename != Path(filename).name or filename in {".", ".."}:
            raise InvalidUploadError(f"Invalid filename: {filename}")
        if filename.startswith(TEMP_PREFIX):
            raise InvalidUploadError(f"Filename uses reserved prefix {TEMP_PREFIX!r}: {filename}")
        if not is_eligible(filename, self.extensions):
            allowed = ", ".join(self.extensions)
            raise InvalidUploadError(f"Unsupported file type: {filename} (allowed: {allowed})")
        return filename

    def add(self, filename: str, data: IO[bytes]) -> PhotoRecord:
        """Persist ``data`` under ``filename`` and index it by content hash.

        The bytes go to a ``tmp-`` file in the base directory and are renamed
        into place only once fully written, so a partial upload is never
        visible under its final name.
        """
        filename = self.validate_filename(filename)
        final_path = self.base_dir / filename

        try:
            fd, temp_name = tempfile.mkstemp(
                dir=self.base_dir, prefix=TEMP_PREFIX, suffix=f"-{filename}"
            )
        except OSError as exc:
            raise WriteError(f"Cannot create temp file for {filename}: {exc}") from exc

        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as out:
                photo_hash = copy_and_hash(data, out)
            with self._mutation_lock:
                os.replace(temp_path, final_path)
                record = PhotoRecord(
                    hash=photo_hash, filename=filename, updated_at=_mtime(final_path)
                )
                self._index_replacement(record)
        except OSError as exc:
            raise WriteError(f"Failed to store {filename}: {exc}") from exc
        finally:
            temp_path.unlink(missing_ok=True)

        logger.info("Stored photo %s (%s)", filename, photo_hash[:8])
        return record

    def _index_replacement(self, record: PhotoRecord) -> None:
        with self._lock.write_locked():
            # The rename replaced whatever content this filename held before.
            stale = [
                h
                for h, existing in self._index.items()
                if existing.location == record.location and h != record.hash
            ]
            for h in stale:
                del self._index[h]
            self._index[record.hash] = record

    def delete(self, photo_hash: str) -> None:
        """Remove the photo's file and its index entry.

        If the file cannot be removed the entry is kept and DeleteError is
        raised; ``rescan()`` reconciles an entry whose file vanished externally.
        """
        with self._mutation_lock:
            with self._lock.read_locked():
                record = self._index.get(photo_hash)
            if record is None:
                raise PhotoNotFoundError(photo_hash)

            try:
                (self.base_dir / record.location).unlink()
            except OSError as exc:
                raise DeleteError(f"Failed to delete {record.filename}: {exc}") from exc

            with self._lock.write_locked():
                del self._index[photo_hash]
        logger.info("Deleted photo %s (%s)", record.filename, photo_hash[:8])


def _raise(exc: OSError) -> None:
    raise exc
