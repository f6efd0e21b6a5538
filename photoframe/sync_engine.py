"""Client-side sync: reconcile a local photo directory with the store's inventory."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from photoframe.exceptions import (
    AlreadyInProgress,
    ConnectionFailure,
    PerItemFailure,
    SyncError,
)
from photostore.config import DEFAULT_EXTENSIONS
from photostore.services.content_store import is_eligible
from photostore.services.hashing import hash_file

if TYPE_CHECKING:
    from collections.abc import Callable, Collection

    from photoframe.transport import InventoryTransport, RemotePhoto

logger = logging.getLogger(__name__)

_DOWNLOAD_PREFIX = ".download-"


@dataclass
class Backoff:
    """Retry delay that doubles on connection failure and resets on success."""

    base: float = 60.0
    maximum: float = 3600.0
    current_delay: float = field(init=False)
    last_error: Exception | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.base <= 0 or self.maximum < self.base:
            raise ValueError(f"Invalid backoff bounds: base={self.base}, maximum={self.maximum}")
        self.current_delay = self.base

    def record_failure(self, error: Exception) -> float:
        """Remember ``error`` and double the delay, up to the ceiling."""
        self.last_error = error
        self.current_delay = min(self.current_delay * 2, self.maximum)
        return self.current_delay

    def reset(self) -> None:
        self.current_delay = self.base
        self.last_error = None


@dataclass
class ItemOutcome:
    """Result of deleting or downloading a single photo."""

    photo_hash: str
    action: str  # "delete" or "download"
    filename: str = ""
    error: PerItemFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncReport:
    """Outcome of one sync cycle."""

    deleted: list[ItemOutcome] = field(default_factory=list)
    downloaded: list[ItemOutcome] = field(default_factory=list)
    failures: list[ItemOutcome] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def changed(self) -> bool:
        """True if at least one delete or download succeeded."""
        return bool(self.deleted or self.downloaded)

    def record(self, outcome: ItemOutcome) -> None:
        if not outcome.ok:
            self.failures.append(outcome)
        elif outcome.action == "delete":
            self.deleted.append(outcome)
        else:
            self.downloaded.append(outcome)


class SyncEngine:
    """Drives a local replica toward the remote store's inventory.

    ``sync()`` is single-flight: a call made while another is running raises
    AlreadyInProgress instead of waiting. Deletions are applied before
    downloads, and a failure on one photo never stops the rest of the batch.
    """

    def __init__(
        self,
        transport: InventoryTransport,
        photo_dir: Path,
        *,
        extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
        backoff: Backoff | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> None:
        self.transport = transport
        self.photo_dir = photo_dir
        self.extensions = extensions
        self.backoff = backoff or Backoff()
        self.on_complete = on_complete
        self.local_inventory: dict[str, bool] = {}
        self._sync_lock = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self._sync_lock.locked()

    def sync(self) -> SyncReport:
        """Run one reconciliation cycle.

        Raises AlreadyInProgress, ConnectionFailure (after growing the
        backoff) or DecodeFailure. Per-photo failures are reported in the
        returned SyncReport.
        """
        if not self._sync_lock.acquire(blocking=False):
            logger.info("Sync already in progress, skipping")
            raise AlreadyInProgress()
        try:
            return self._sync()
        finally:
            self._sync_lock.release()

    def _sync(self) -> SyncReport:
        started = time.monotonic()
        logger.info("Starting photo sync")

        try:
            remote_photos = self.transport.fetch_inventory()
        except ConnectionFailure as exc:
            delay = self.backoff.record_failure(exc)
            logger.warning("%s; will retry in %.0fs", exc, delay)
            raise
        self.backoff.reset()
        self._sweep_partial_downloads()

        remote: dict[str, RemotePhoto] = {}
        for photo in remote_photos:
            remote.setdefault(photo.hash, photo)
        logger.info("Found %d photos on server", len(remote))

        self.local_inventory = self.load_local_inventory()
        logger.info("Found %d photos locally", len(self.local_inventory))

        to_delete = sorted(h for h in self.local_inventory if h not in remote)
        to_download = [photo for h, photo in remote.items() if h not in self.local_inventory]

        report = SyncReport()
        for photo_hash in to_delete:
            report.record(self._delete_local(photo_hash))
        for photo in to_download:
            report.record(self._download(photo, wanted=remote.keys()))

        report.elapsed = time.monotonic() - started
        logger.info(
            "Sync completed in %.1fs: %d deleted, %d downloaded, %d failed",
            report.elapsed,
            len(report.deleted),
            len(report.downloaded),
            len(report.failures),
        )

        if report.changed and self.on_complete is not None:
            try:
                self.on_complete()
            except Exception:
                logger.exception("Sync completion callback failed")
        return report

    # ── Local inventory ─────────────────────────────────

    def _eligible_files(self) -> list[Path]:
        self.photo_dir.mkdir(parents=True, exist_ok=True)
        return sorted(
            entry
            for entry in self.photo_dir.iterdir()
            if entry.is_file() and is_eligible(entry.name, self.extensions)
        )

    def _sweep_partial_downloads(self) -> None:
        """Remove ``.part`` files left behind by a cycle that never finished."""
        if not self.photo_dir.is_dir():
            return
        for leftover in self.photo_dir.glob(f"{_DOWNLOAD_PREFIX}*.part"):
            try:
                leftover.unlink()
            except OSError as exc:
                logger.warning("Could not remove partial download %s: %s", leftover.name, exc)
            else:
                logger.info("Removed partial download %s", leftover.name)

    def load_local_inventory(self) -> dict[str, bool]:
        """Hash every eligible file in the photo directory. Unreadable files are skipped."""
        inventory: dict[str, bool] = {}
        for path in self._eligible_files():
            try:
                inventory[hash_file(path)] = True
            except OSError as exc:
                logger.warning("Skipping unreadable photo %s: %s", path.name, exc)
        return inventory

    def _locate(self, photo_hash: str) -> list[Path]:
        matches: list[Path] = []
        for path in self._eligible_files():
            try:
                if hash_file(path) == photo_hash:
                    matches.append(path)
            except OSError:
                continue
        return matches

    # ── Per-item actions ────────────────────────────────

    def _delete_local(self, photo_hash: str) -> ItemOutcome:
        outcome = ItemOutcome(photo_hash=photo_hash, action="delete")
        logger.info("Deleting photo %s", photo_hash[:8])
        try:
            matches = self._locate(photo_hash)
            if not matches:
                raise PerItemFailure(photo_hash, "delete", "no local file with this hash")
            for path in matches:
                path.unlink()
                outcome.filename = path.name
        except PerItemFailure as exc:
            outcome.error = exc
        except OSError as exc:
            outcome.error = PerItemFailure(photo_hash, "delete", str(exc))
        if outcome.error is not None:
            logger.error("%s", outcome.error)
        return outcome

    def _download(self, photo: RemotePhoto, wanted: Collection[str] = ()) -> ItemOutcome:
        outcome = ItemOutcome(photo_hash=photo.hash, action="download", filename=photo.filename)
        logger.info("Downloading %s (%s)", photo.filename, photo.hash[:8])
        try:
            outcome.filename = self._fetch_to_disk(photo, wanted)
        except PerItemFailure as exc:
            outcome.error = exc
        except (SyncError, OSError) as exc:
            outcome.error = PerItemFailure(photo.hash, "download", str(exc))
        if outcome.error is not None:
            logger.error("%s", outcome.error)
        return outcome

    def _target_path(self, name: str, photo_hash: str, wanted: Collection[str]) -> Path:
        """Pick where a download lands without clobbering content still on the server.

        Records may share a filename; the later one gets the first eight hex
        digits of its hash appended to the stem.
        """
        target = self.photo_dir / name
        try:
            occupant = hash_file(target)
        except FileNotFoundError:
            return target
        if occupant == photo_hash or occupant not in wanted:
            return target
        stem, suffix = os.path.splitext(name)
        return self.photo_dir / f"{stem}-{photo_hash[:8]}{suffix}"

    def _fetch_to_disk(self, photo: RemotePhoto, wanted: Collection[str] = ()) -> str:
        name = Path(photo.filename).name
        if name != photo.filename or not is_eligible(name, self.extensions):
            raise PerItemFailure(
                photo.hash, "download", f"unsafe or unsupported filename {photo.filename!r}"
            )

        fd, temp_name = tempfile.mkstemp(dir=self.photo_dir, prefix=_DOWNLOAD_PREFIX, suffix=".part")
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as out:
                self.transport.download(photo.hash, out)
            actual = hash_file(temp_path)
            if actual != photo.hash:
                raise PerItemFailure(
                    photo.hash, "download", f"content hash mismatch (got {actual[:8]})"
                )
            target = self._target_path(name, photo.hash, wanted)
            os.replace(temp_path, target)
        finally:
            temp_path.unlink(missing_ok=True)
        return target.name
