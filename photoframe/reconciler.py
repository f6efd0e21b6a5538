"""In-memory photo working set kept in step with a local directory."""

from __future__ import annotations

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from photoframe.imaging import load_image
from photostore.config import DEFAULT_EXTENSIONS
from photostore.services.content_store import is_eligible
from photostore.services.hashing import hash_file
from photostore.services.rwlock import ReadWriteLock

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_LOAD_CONCURRENCY = 4


@dataclass(frozen=True)
class Photo:
    """A decoded photo and the file it came from.

    ``content_hash`` is the digest of the bytes that were decoded, so a file
    rewritten in place can be told apart from the loaded entry.
    """

    path: Path
    image: Any
    content_hash: str | None = None


@dataclass
class BulkLoadResult:
    """Paths handled by one bulk load."""

    loaded: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)


def _normalize(path: str | os.PathLike[str]) -> Path:
    return Path(os.path.abspath(path))


class DirectoryReconciler:
    """Path-keyed working set of decoded photos plus a display cursor.

    Readers (``current``, ``snapshot``) share a read lock; every mutation
    takes the write lock only to update the list. Decoding runs on a
    fixed-size worker pool shared by bulk loads and watch-driven loads, so at
    most ``max_workers`` files are open for decoding at once.
    """

    def __init__(
        self,
        *,
        loader: Callable[[Path], Any] = load_image,
        extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
        max_workers: int = DEFAULT_LOAD_CONCURRENCY,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.loader = loader
        self.extensions = extensions
        self.max_workers = max_workers
        self._lock = ReadWriteLock()
        self._photos: list[Photo] = []
        self._cursor: int | None = None
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="photo-load")

    def close(self) -> None:
        """Wait for queued loads and stop the worker pool."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> DirectoryReconciler:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def is_eligible(self, path: str | os.PathLike[str]) -> bool:
        return is_eligible(Path(path).name, self.extensions)

    # ── Reads ───────────────────────────────────────────

    def current(self) -> Photo | None:
        """Return the photo under the cursor, or None if the set is empty."""
        with self._lock.read_locked():
            if self._cursor is None:
                return None
            return self._photos[self._cursor]

    def snapshot(self) -> list[Photo]:
        with self._lock.read_locked():
            return list(self._photos)

    def paths(self) -> list[Path]:
        with self._lock.read_locked():
            return [photo.path for photo in self._photos]

    @property
    def cursor(self) -> int | None:
        with self._lock.read_locked():
            return self._cursor

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._photos)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, os.PathLike)):
            return False
        key = _normalize(path)
        with self._lock.read_locked():
            return any(photo.path == key for photo in self._photos)

    # ── Mutations ───────────────────────────────────────

    def add_entry(
        self,
        path: str | os.PathLike[str],
        image: Any,
        content_hash: str | None = None,
    ) -> bool:
        """Append a photo unless ``path`` is already present (first writer wins).

        Returns True if the entry was added.
        """
        key = _normalize(path)
        with self._lock.write_locked():
            if any(photo.path == key for photo in self._photos):
                return False
            self._photos.append(Photo(path=key, image=image, content_hash=content_hash))
            if self._cursor is None:
                self._cursor = 0
        logger.info("Added image: %s", key)
        return True

    def remove_entry(self, path: str | os.PathLike[str]) -> bool:
        """Remove the photo loaded from ``path``. Returns False if it was not present."""
        key = _normalize(path)
        with self._lock.write_locked():
            index = next((i for i, photo in enumerate(self._photos) if photo.path == key), None)
            if index is not None:
                del self._photos[index]
                if not self._photos:
                    self._cursor = None
                elif self._cursor is not None:
                    if index == self._cursor:
                        self._cursor = 0
                    elif index < self._cursor:
                        self._cursor -= 1
        if index is None:
            logger.info("Image not found for removal: %s", key)
            return False
        logger.info("Removed image: %s", key)
        return True

    def advance(self) -> Photo | None:
        """Move the cursor to the next photo, wrapping around."""
        with self._lock.write_locked():
            if self._cursor is None:
                return None
            self._cursor = (self._cursor + 1) % len(self._photos)
            return self._photos[self._cursor]

    def retreat(self) -> Photo | None:
        """Move the cursor to the previous photo, wrapping around."""
        with self._lock.write_locked():
            if self._cursor is None:
                return None
            self._cursor = (self._cursor - 1) % len(self._photos)
            return self._photos[self._cursor]

    # ── Loading ─────────────────────────────────────────

    def _load_entry(self, path: Path) -> bool:
        content_hash = hash_file(path)
        image = self.loader(path)
        return self.add_entry(path, image, content_hash)

    def load_async(self, path: str | os.PathLike[str]) -> Future[bool]:
        """Decode ``path`` on the worker pool and add it when done."""
        key = _normalize(path)
        future = self._executor.submit(self._load_entry, key)
        future.add_done_callback(lambda f: self._log_failure(key, f))
        return future

    @staticmethod
    def _log_failure(path: Path, future: Future[bool]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Failed to load image %s: %s", path, exc)

    def bulk_load(self, directory: Path) -> BulkLoadResult:
        """Decode every eligible file in ``directory`` and add the ones that load.

        A file that fails to decode is logged and skipped. Returns once every
        load has finished.
        """
        result = BulkLoadResult()
        candidates = sorted(
            _normalize(entry)
            for entry in directory.iterdir()
            if entry.is_file() and self.is_eligible(entry)
        )
        futures = {self._executor.submit(self._load_entry, path): path for path in candidates}
        for future in as_completed(futures):
            path = futures[future]
            try:
                added = future.result()
            except Exception:
                logger.exception("Failed to load image %s", path)
                result.failed.append(path)
                continue
            (result.loaded if added else result.skipped).append(path)

        logger.info(
            "Loaded %d images from %s (%d already present, %d failed)",
            len(result.loaded),
            directory,
            len(result.skipped),
            len(result.failed),
        )
        return result

    def _is_stale(self, photo: Photo) -> bool:
        try:
            current_hash = hash_file(photo.path)
        except OSError:
            return True
        return photo.content_hash is not None and current_hash != photo.content_hash

    def reload(self, directory: Path) -> BulkLoadResult:
        """Drop entries whose file is gone or was rewritten, then bulk load ``directory``."""
        for photo in self.snapshot():
            if self._is_stale(photo):
                self.remove_entry(photo.path)
        return self.bulk_load(directory)
