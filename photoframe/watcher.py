"""Filesystem watch that feeds incremental updates into a DirectoryReconciler."""

from __future__ import annotations

import logging
import os
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from collections.abc import Callable

    from watchdog.observers.api import BaseObserver

    from photoframe.reconciler import DirectoryReconciler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchEvent:
    """A filesystem change relevant to the working set."""

    kind: str  # "created", "deleted" or "moved"
    path: Path
    dest_path: Path | None = None


class _EventForwarder(FileSystemEventHandler):
    """Translate watchdog callbacks into queued WatchEvents."""

    def __init__(self, events: queue.Queue[WatchEvent | None]) -> None:
        super().__init__()
        self._events = events

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._events.put(WatchEvent("created", Path(os.fsdecode(event.src_path))))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._events.put(WatchEvent("deleted", Path(os.fsdecode(event.src_path))))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._events.put(
                WatchEvent(
                    "moved",
                    Path(os.fsdecode(event.src_path)),
                    Path(os.fsdecode(event.dest_path)),
                )
            )


class DirectoryWatcher:
    """Background task applying filesystem events to a reconciler.

    Creation of an eligible file schedules an asynchronous load; removal
    removes the entry; a rename removes the old path and loads the new one
    when it is an eligible file in the watched directory. The loop ends on
    ``stop()`` or, after logging an error, when the watch subscription dies.
    """

    def __init__(
        self,
        reconciler: DirectoryReconciler,
        directory: Path,
        *,
        observer_factory: Callable[[], BaseObserver] = Observer,
        poll_interval: float = 0.5,
    ) -> None:
        self.reconciler = reconciler
        self.directory = Path(os.path.abspath(directory))
        self._observer_factory = observer_factory
        self._poll_interval = poll_interval
        self._events: queue.Queue[WatchEvent | None] = queue.Queue()
        self._observer: BaseObserver | None = None
        self._thread: threading.Thread | None = None
        self._stopping = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Subscribe to filesystem events and start the event loop.

        Returns False, after logging, if the subscription cannot be set up.
        """
        if self.running:
            return True
        observer = self._observer_factory()
        try:
            observer.schedule(_EventForwarder(self._events), str(self.directory), recursive=False)
            observer.start()
        except OSError as exc:
            logger.error("Failed to watch directory %s: %s", self.directory, exc)
            return False

        self._observer = observer
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="photo-watch", daemon=True)
        self._thread.start()
        logger.info("Started watching directory: %s", self.directory)
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """Close the subscription and wait for the event loop to exit."""
        self._stopping.set()
        self._events.put(None)
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout)
            self._observer = None
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Stopped watching directory: %s", self.directory)

    def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                event = self._events.get(timeout=self._poll_interval)
            except queue.Empty:
                observer = self._observer
                if observer is not None and not observer.is_alive() and not self._stopping.is_set():
                    logger.error("Watch subscription for %s ended unexpectedly", self.directory)
                    return
                continue
            if event is None:
                return
            self.handle(event)

    def _is_watched_photo(self, path: Path) -> bool:
        return path.parent == self.directory and self.reconciler.is_eligible(path)

    def handle(self, event: WatchEvent) -> None:
        """Apply a single event to the reconciler."""
        if event.kind == "created":
            if self._is_watched_photo(event.path):
                logger.info("Detected new image: %s", event.path)
                self.reconciler.load_async(event.path)
        elif event.kind == "deleted":
            if self.reconciler.is_eligible(event.path):
                logger.info("Detected removed image: %s", event.path)
                self.reconciler.remove_entry(event.path)
        elif event.kind == "moved":
            if self.reconciler.is_eligible(event.path):
                logger.info("Detected removed image: %s", event.path)
                self.reconciler.remove_entry(event.path)
            if event.dest_path is not None and self._is_watched_photo(event.dest_path):
                logger.info("Detected new image: %s", event.dest_path)
                self.reconciler.load_async(event.dest_path)
