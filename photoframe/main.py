"""Photo frame client: periodic sync plus working-set maintenance."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path

from photoframe.config import FrameSettings
from photoframe.exceptions import AlreadyInProgress, SyncError
from photoframe.imaging import load_image
from photoframe.reconciler import DirectoryReconciler
from photoframe.sync_engine import Backoff, SyncEngine
from photoframe.transport import HttpInventoryTransport
from photoframe.watcher import DirectoryWatcher

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure client logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def next_delay(engine: SyncEngine, interval: float, succeeded: bool) -> float:
    """Seconds to wait before the next sync attempt."""
    if succeeded:
        return interval
    return engine.backoff.current_delay


def run_once(engine: SyncEngine) -> bool:
    """Run one sync cycle, logging instead of raising. Returns True on success."""
    try:
        engine.sync()
    except AlreadyInProgress:
        logger.info("Skipped sync: another cycle is still running")
        return True
    except (SyncError, OSError) as exc:
        logger.error("Sync failed: %s", exc)
        return False
    return True


def run_forever(engine: SyncEngine, interval: float, stop: threading.Event) -> None:
    """Sync until ``stop`` is set, waiting the backoff delay after a failure."""
    while not stop.is_set():
        succeeded = run_once(engine)
        delay = next_delay(engine, interval, succeeded)
        logger.debug("Next sync in %.0fs", delay)
        stop.wait(delay)


def build_reconciler(settings: FrameSettings) -> DirectoryReconciler:
    max_size = (settings.max_width, settings.max_height)
    return DirectoryReconciler(
        loader=lambda path: load_image(path, max_size),
        extensions=settings.eligible_extensions,
        max_workers=settings.load_concurrency,
    )


def build_engine(
    settings: FrameSettings,
    transport: HttpInventoryTransport,
    reconciler: DirectoryReconciler,
) -> SyncEngine:
    """Wire a sync engine whose completion reloads the working set.

    In watch mode the watcher keeps the working set current, so no reload
    callback is registered.
    """
    photo_dir = settings.photo_dir

    def reload_working_set() -> None:
        reconciler.reload(photo_dir)

    return SyncEngine(
        transport,
        photo_dir,
        extensions=settings.eligible_extensions,
        backoff=Backoff(base=settings.backoff_base, maximum=settings.backoff_max),
        on_complete=None if settings.watch else reload_working_set,
    )


def run(settings: FrameSettings, stop: threading.Event, once: bool = False) -> None:
    """Load the working set, then keep it and the photo directory in sync."""
    settings.validate_backoff()
    settings.photo_dir.mkdir(parents=True, exist_ok=True)

    with (
        HttpInventoryTransport(settings.server_url, timeout=settings.request_timeout) as transport,
        build_reconciler(settings) as reconciler,
    ):
        engine = build_engine(settings, transport, reconciler)

        watcher: DirectoryWatcher | None = None
        if settings.watch:
            # Started first so files created during the initial load raise events.
            watcher = DirectoryWatcher(reconciler, settings.photo_dir)
            watcher.start()

        try:
            reconciler.bulk_load(settings.photo_dir)
            if once:
                run_once(engine)
            else:
                run_forever(engine, settings.sync_interval, stop)
        finally:
            if watcher is not None:
                watcher.stop()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="photoframe",
        description="Keep a local photo directory in sync with a photo store",
    )
    parser.add_argument("--server", "-s", help="Photo store URL")
    parser.add_argument("--dir", "-d", help="Local photo directory")
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Track directory changes with filesystem events instead of reloading after sync",
    )
    parser.add_argument("--once", action="store_true", help="Run a single sync cycle and exit")
    args = parser.parse_args()

    overrides: dict[str, object] = {}
    if args.server:
        overrides["server_url"] = args.server
    if args.dir:
        overrides["photo_dir"] = Path(args.dir).expanduser().resolve()
    if args.watch:
        overrides["watch"] = True

    try:
        settings = FrameSettings(**overrides)
        settings.validate_backoff()
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    _configure_logging(settings.debug)
    logger.info("Syncing %s with %s", settings.photo_dir, settings.server_url)

    stop = threading.Event()
    try:
        run(settings, stop, once=args.once)
    except KeyboardInterrupt:
        stop.set()
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
