"""
Tests for quiescence-window file stability.

Uses a fake clock so no test sleeps.
"""

import errno
from pathlib import Path

from testlog_ingest.watchfolders import FileStabilityTracker


WINDOW_MS = 1500


def _write(path: Path, size: int) -> None:
    path.write_bytes(b"x" * size)


class TestFileStabilityTracker:
    """Tests for observe / is_stable / forget."""

    def test_untracked_file_is_not_stable(self, tmp_path, clock):
        path = tmp_path / "unit.log"
        _write(path, 10)
        tracker = FileStabilityTracker(clock=clock)

        check = tracker.check(path, WINDOW_MS)

        assert not check.is_stable
        assert check.size_bytes == 10
        assert tracker.get(path) is not None

    def test_unchanged_for_window_is_stable(self, tmp_path, clock):
        path = tmp_path / "unit.log"
        _write(path, 10)
        tracker = FileStabilityTracker(clock=clock)
        tracker.observe(path)

        clock.advance(1.0)
        assert not tracker.is_stable(path, WINDOW_MS)

        clock.advance(0.5)
        check = tracker.check(path, WINDOW_MS)
        assert check.is_stable
        assert check.stable_for_ms == 1500

    def test_change_inside_window_restarts_it(self, tmp_path, clock):
        path = tmp_path / "unit.log"
        _write(path, 10)
        tracker = FileStabilityTracker(clock=clock)
        tracker.observe(path)

        clock.advance(1.0)
        _write(path, 20)
        tracker.observe(path)

        clock.advance(1.0)
        assert not tracker.is_stable(path, WINDOW_MS)

        clock.advance(0.5)
        assert tracker.is_stable(path, WINDOW_MS)

    def test_size_change_detected_by_check(self, tmp_path, clock):
        path = tmp_path / "unit.log"
        _write(path, 10)
        tracker = FileStabilityTracker(clock=clock)
        tracker.observe(path)
        clock.advance(2.0)

        _write(path, 11)
        check = tracker.check(path, WINDOW_MS)

        assert not check.is_stable
        assert "size changed" in check.reason

    def test_repeated_observe_keeps_window(self, tmp_path, clock):
        """Observing an unchanged file does not restart the window."""
        path = tmp_path / "unit.log"
        _write(path, 10)
        tracker = FileStabilityTracker(clock=clock)
        tracker.observe(path)

        clock.advance(1.0)
        tracker.observe(path)
        clock.advance(0.5)

        assert tracker.is_stable(path, WINDOW_MS)

    def test_deleted_file_is_dropped(self, tmp_path, clock):
        path = tmp_path / "unit.log"
        _write(path, 10)
        tracker = FileStabilityTracker(clock=clock)
        tracker.observe(path)

        path.unlink()
        tracker.observe(path)

        assert tracker.tracked_paths() == []
        assert not tracker.is_stable(path, WINDOW_MS)

    def test_forget_and_clear(self, tmp_path, clock):
        a = tmp_path / "a.log"
        b = tmp_path / "b.log"
        _write(a, 1)
        _write(b, 2)
        tracker = FileStabilityTracker(clock=clock)
        tracker.observe(a)
        tracker.observe(b)

        tracker.forget(a)
        assert tracker.tracked_paths() == [str(b.resolve())]

        tracker.clear()
        assert tracker.tracked_paths() == []

    def test_first_observed_at_survives_size_change(self, tmp_path, clock):
        path = tmp_path / "unit.log"
        _write(path, 10)
        tracker = FileStabilityTracker(clock=clock)
        tracker.observe(path)
        started = clock.now

        clock.advance(3.0)
        _write(path, 30)
        tracker.observe(path)

        pending = tracker.get(path)
        assert pending.first_observed_at == started
        assert pending.last_changed_at == started + 3.0
        assert pending.last_size == 30


def _failing_stat(monkeypatch, target: Path, error: OSError) -> None:
    """Make Path.stat raise error for target only."""
    real_stat = Path.stat
    target_key = str(target.resolve())

    def stat(self, *args, **kwargs):
        if str(self) == target_key:
            raise error
        return real_stat(self, *args, **kwargs)

    monkeypatch.setattr(Path, "stat", stat)


class TestStatErrors:
    """Tests for files that cannot be inspected."""

    def test_permission_denied_drops_tracking(self, tmp_path, clock, monkeypatch):
        path = tmp_path / "unit.log"
        _write(path, 10)
        tracker = FileStabilityTracker(clock=clock)
        tracker.observe(path)

        with monkeypatch.context() as m:
            _failing_stat(m, path, PermissionError(errno.EACCES, "Permission denied"))
            tracker.observe(path)
            assert tracker.get(path) is None

            clock.advance(5.0)
            check = tracker.check(path, WINDOW_MS)

        assert not check.is_stable
        assert check.size_bytes is None
        assert tracker.tracked_paths() == []

    def test_transient_error_keeps_state(self, tmp_path, clock, monkeypatch):
        path = tmp_path / "unit.log"
        _write(path, 10)
        tracker = FileStabilityTracker(clock=clock)
        tracker.observe(path)
        before = tracker.get(path)

        clock.advance(5.0)
        with monkeypatch.context() as m:
            _failing_stat(m, path, OSError(errno.EIO, "I/O error"))
            tracker.observe(path)
            check = tracker.check(path, WINDOW_MS)

        assert not check.is_stable
        assert "locked" in check.reason
        assert tracker.get(path) == before

        # Readable again: the window kept running through the error
        assert tracker.is_stable(path, WINDOW_MS)
