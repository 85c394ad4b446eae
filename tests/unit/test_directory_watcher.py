"""
Tests for the polling directory watcher.

poll_once() is driven by hand so most tests need no background thread.
"""

import os
import sys
import threading
from pathlib import Path

import pytest

# Add src to path
_src_path = Path(__file__).parent.parent.parent / "src"
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from domain.exceptions import WatcherSetupError
from orchestration.directory_watcher import DirectoryWatcher


@pytest.fixture
def watch_dir(tmp_path):
    directory = tmp_path / "Out"
    directory.mkdir()
    return directory


class TestPolling:
    """Tests for establish() and poll_once()."""

    def test_existing_files_are_baseline(self, watch_dir):
        """Files present at startup are never reported."""
        (watch_dir / "O1.json").write_text("{}")
        watcher = DirectoryWatcher(watch_dir)
        watcher.establish()

        assert watcher.poll_once() == []

    def test_new_file_reported_once(self, watch_dir):
        """A created file is reported on the next scan only."""
        watcher = DirectoryWatcher(watch_dir)
        watcher.establish()
        (watch_dir / "O1.json").write_text("{}")

        assert watcher.poll_once() == [watch_dir / "O1.json"]
        assert watcher.poll_once() == []

    def test_modification_not_reported(self, watch_dir):
        """Rewriting a known file is not a creation."""
        target = watch_dir / "O1.json"
        target.write_text("{}")
        watcher = DirectoryWatcher(watch_dir)
        watcher.establish()

        target.write_text('{"status": "ok"}')

        assert watcher.poll_once() == []

    def test_new_files_sorted_by_name(self, watch_dir):
        """Several files in one scan come back in name order."""
        watcher = DirectoryWatcher(watch_dir)
        watcher.establish()
        for name in ("O3.json", "O1.json", "O2.json"):
            (watch_dir / name).write_text("{}")

        assert [p.name for p in watcher.poll_once()] == ["O1.json", "O2.json", "O3.json"]

    def test_subdirectories_ignored(self, watch_dir):
        """Only regular files count."""
        watcher = DirectoryWatcher(watch_dir)
        watcher.establish()
        (watch_dir / "Processed").mkdir()

        assert watcher.poll_once() == []

    def test_recreated_file_reported_again(self, watch_dir):
        """Delete then re-create is a new creation."""
        target = watch_dir / "O1.json"
        watcher = DirectoryWatcher(watch_dir)
        watcher.establish()
        target.write_text("{}")
        watcher.poll_once()

        target.unlink()
        assert watcher.poll_once() == []
        target.write_text("{}")

        assert watcher.poll_once() == [target]

    def test_rename_not_reported(self, watch_dir):
        """Renaming a known file into a response name is not a creation."""
        (watch_dir / "O5.tmp").write_text("{}")
        watcher = DirectoryWatcher(watch_dir)
        watcher.establish()

        os.rename(watch_dir / "O5.tmp", watch_dir / "O5.json")

        assert watcher.poll_once() == []

    def test_rename_of_new_file_not_reported_twice(self, watch_dir):
        """A file reported once and then renamed is not reported again."""
        watcher = DirectoryWatcher(watch_dir)
        watcher.establish()
        (watch_dir / "O6.part").write_text("{}")
        assert watcher.poll_once() == [watch_dir / "O6.part"]

        os.rename(watch_dir / "O6.part", watch_dir / "O6.json")

        assert watcher.poll_once() == []

    def test_missing_directory(self, tmp_path):
        """A watch can't be established on a missing directory."""
        watcher = DirectoryWatcher(tmp_path / "nope")

        with pytest.raises(WatcherSetupError, match="does not exist"):
            watcher.establish()

    def test_cannot_restart(self, watch_dir):
        """Establishing twice is refused."""
        watcher = DirectoryWatcher(watch_dir)
        watcher.establish()

        with pytest.raises(WatcherSetupError, match="cannot be restarted"):
            watcher.establish()


class TestBackgroundWatch:
    """Tests for start() and the polling thread."""

    def test_reports_created_file(self, watch_dir):
        """The callback receives new files from the watch thread."""
        seen = threading.Event()
        paths: list[Path] = []

        def on_created(path):
            paths.append(path)
            seen.set()

        watcher = DirectoryWatcher(watch_dir, poll_interval=0.02)
        watcher.start(on_created)
        try:
            (watch_dir / "O7.json").write_text("{}")
            assert seen.wait(5.0)
        finally:
            watcher.stop()

        assert paths == [watch_dir / "O7.json"]
        assert watcher.is_running is False

    def test_handler_failure_kills_watch(self, watch_dir):
        """A failing handler stops the watch and reports once."""
        errors: list[Exception] = []
        reported = threading.Event()

        def on_created(path):
            raise RuntimeError("store unavailable")

        def on_error(error):
            errors.append(error)
            reported.set()

        watcher = DirectoryWatcher(watch_dir, poll_interval=0.02)
        watcher.start(on_created, on_error)
        try:
            (watch_dir / "O7.json").write_text("{}")
            assert reported.wait(5.0)
            (watch_dir / "O8.json").write_text("{}")
        finally:
            watcher.stop()

        assert len(errors) == 1
        assert isinstance(watcher.failed, RuntimeError)

    def test_start_twice_refused(self, watch_dir):
        """A started watcher can't be started again."""
        watcher = DirectoryWatcher(watch_dir, poll_interval=0.02)
        watcher.start(lambda path: None)
        try:
            with pytest.raises(WatcherSetupError):
                watcher.start(lambda path: None)
        finally:
            watcher.stop()
