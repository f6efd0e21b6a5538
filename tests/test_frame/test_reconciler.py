"""Tests for the in-memory photo working set."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

import pytest

from photoframe.reconciler import DirectoryReconciler
from tests.conftest import make_jpeg

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


def _read_loader(path: Path) -> bytes:
    return path.read_bytes()


@pytest.fixture
def reconciler() -> Iterator[DirectoryReconciler]:
    with DirectoryReconciler(loader=_read_loader) as r:
        yield r


class TestAddEntry:
    def test_first_writer_wins(self, reconciler: DirectoryReconciler, tmp_path: Path) -> None:
        path = tmp_path / "a.jpg"

        assert reconciler.add_entry(path, "first")
        assert not reconciler.add_entry(path, "second")

        [photo] = reconciler.snapshot()
        assert photo.image == "first"

    def test_paths_are_normalized(self, reconciler: DirectoryReconciler, tmp_path: Path) -> None:
        reconciler.add_entry(tmp_path / "a.jpg", "first")
        assert not reconciler.add_entry(tmp_path / "sub" / ".." / "a.jpg", "second")
        assert len(reconciler) == 1

    def test_first_entry_sets_cursor(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        assert reconciler.cursor is None
        assert reconciler.current() is None

        reconciler.add_entry(tmp_path / "a.jpg", "a")

        assert reconciler.cursor == 0
        current = reconciler.current()
        assert current is not None
        assert current.image == "a"

    def test_snapshot_is_a_copy(self, reconciler: DirectoryReconciler, tmp_path: Path) -> None:
        reconciler.add_entry(tmp_path / "a.jpg", "a")
        snapshot = reconciler.snapshot()
        snapshot.clear()
        assert len(reconciler) == 1


class TestRemoveEntry:
    def _fill(self, reconciler: DirectoryReconciler, tmp_path: Path, n: int) -> list[Path]:
        paths = [tmp_path / f"{i}.jpg" for i in range(n)]
        for path in paths:
            reconciler.add_entry(path, path.name)
        return paths

    def test_remove_missing_is_noop(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        self._fill(reconciler, tmp_path, 1)
        assert not reconciler.remove_entry(tmp_path / "nope.jpg")
        assert len(reconciler) == 1

    def test_removing_last_entry_clears_cursor(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        [path] = self._fill(reconciler, tmp_path, 1)
        assert reconciler.remove_entry(path)
        assert reconciler.cursor is None
        assert reconciler.current() is None

    def test_removing_current_resets_cursor(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        paths = self._fill(reconciler, tmp_path, 3)
        reconciler.advance()
        reconciler.advance()

        reconciler.remove_entry(paths[2])

        assert reconciler.cursor == 0

    def test_removing_earlier_entry_keeps_current_photo(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        paths = self._fill(reconciler, tmp_path, 3)
        reconciler.advance()
        reconciler.advance()

        reconciler.remove_entry(paths[0])

        current = reconciler.current()
        assert current is not None
        assert current.image == "2.jpg"

    def test_advance_and_retreat_wrap(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        self._fill(reconciler, tmp_path, 3)

        retreated = reconciler.retreat()
        assert retreated is not None
        assert retreated.image == "2.jpg"
        advanced = reconciler.advance()
        assert advanced is not None
        assert advanced.image == "0.jpg"

    def test_advance_on_empty_set(self, reconciler: DirectoryReconciler) -> None:
        assert reconciler.advance() is None
        assert reconciler.retreat() is None


class TestBulkLoad:
    def test_loads_eligible_files(self, reconciler: DirectoryReconciler, tmp_path: Path) -> None:
        (tmp_path / "a.jpg").write_bytes(b"a")
        (tmp_path / "b.JPEG").write_bytes(b"b")
        (tmp_path / "notes.txt").write_bytes(b"n")
        (tmp_path / ".download-1.part").write_bytes(b"p")

        result = reconciler.bulk_load(tmp_path)

        assert sorted(p.name for p in result.loaded) == ["a.jpg", "b.JPEG"]
        assert sorted(p.name for p in reconciler.paths()) == ["a.jpg", "b.JPEG"]
        assert reconciler.cursor == 0

    def test_decode_failures_are_skipped(self, tmp_path: Path) -> None:
        (tmp_path / "good.jpg").write_bytes(make_jpeg())
        (tmp_path / "broken.jpg").write_bytes(b"not really a jpeg")

        with DirectoryReconciler(max_workers=2) as reconciler:
            result = reconciler.bulk_load(tmp_path)

        assert [p.name for p in result.loaded] == ["good.jpg"]
        assert [p.name for p in result.failed] == ["broken.jpg"]
        assert [p.name for p in reconciler.paths()] == ["good.jpg"]

    def test_second_load_skips_present_paths(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        (tmp_path / "a.jpg").write_bytes(b"a")
        reconciler.bulk_load(tmp_path)

        result = reconciler.bulk_load(tmp_path)

        assert result.loaded == []
        assert [p.name for p in result.skipped] == ["a.jpg"]
        assert len(reconciler) == 1

    def test_concurrency_is_bounded(self, tmp_path: Path) -> None:
        for i in range(12):
            (tmp_path / f"{i}.jpg").write_bytes(b"x")
        active = 0
        peak = 0
        lock = threading.Lock()

        def slow_loader(path: Path) -> bytes:
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with lock:
                active -= 1
            return path.read_bytes()

        with DirectoryReconciler(loader=slow_loader, max_workers=3) as reconciler:
            result = reconciler.bulk_load(tmp_path)

        assert len(result.loaded) == 12
        assert 1 <= peak <= 3

    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValueError):
            DirectoryReconciler(max_workers=0)


class TestLoadAsync:
    def test_adds_entry_when_done(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        path = tmp_path / "a.jpg"
        path.write_bytes(b"a")

        assert reconciler.load_async(path).result(timeout=5)
        assert path in reconciler

    def test_failure_is_not_added(self, reconciler: DirectoryReconciler, tmp_path: Path) -> None:
        future = reconciler.load_async(tmp_path / "missing.jpg")

        with pytest.raises(FileNotFoundError):
            future.result(timeout=5)
        assert len(reconciler) == 0


class TestReload:
    def test_drops_vanished_and_adds_new(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        (tmp_path / "old.jpg").write_bytes(b"old")
        reconciler.bulk_load(tmp_path)
        (tmp_path / "old.jpg").unlink()
        (tmp_path / "new.jpg").write_bytes(b"new")

        result = reconciler.reload(tmp_path)

        assert [p.name for p in result.loaded] == ["new.jpg"]
        assert [p.name for p in reconciler.paths()] == ["new.jpg"]
        assert reconciler.cursor == 0

    def test_replaced_content_is_reloaded(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        (tmp_path / "a.jpg").write_bytes(b"old")
        reconciler.bulk_load(tmp_path)
        (tmp_path / "a.jpg").unlink()
        (tmp_path / "a.jpg").write_bytes(b"new")

        result = reconciler.reload(tmp_path)

        assert [p.name for p in result.loaded] == ["a.jpg"]
        assert [photo.image for photo in reconciler.snapshot()] == [b"new"]

    def test_unchanged_entries_are_kept(
        self, reconciler: DirectoryReconciler, tmp_path: Path
    ) -> None:
        (tmp_path / "a.jpg").write_bytes(b"a")
        reconciler.bulk_load(tmp_path)
        [before] = reconciler.snapshot()

        result = reconciler.reload(tmp_path)

        assert [p.name for p in result.skipped] == ["a.jpg"]
        assert reconciler.snapshot() == [before]
