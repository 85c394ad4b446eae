"""
Directory Watcher - Turns a directory into a stream of file-creation events.

The watcher polls the directory listing and reports regular files that
were not there on the previous scan. Files present when the watch is
established are the baseline and are never reported. Modifications are
not reported, and neither are renames: a new name whose inode belonged to
a name that vanished in the same scan is the same file moved. A deleted
file is forgotten, so a later file with the same name counts as a new
creation.

A watch is established once and cannot be restarted. If a scan fails
after startup the watch is dead for the rest of the process.
"""

import sys
import threading
from pathlib import Path
from typing import Callable

# Add src to path for imports
_src_path = Path(__file__).parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from domain.exceptions import WatcherSetupError

FileCallback = Callable[[Path], None]
ErrorCallback = Callable[[Exception], None]


class DirectoryWatcher:
    """
    Polling watcher for a single directory.

    Directories inside the watched directory (Processed/, Error/...) are
    ignored; only regular files are reported.
    """

    def __init__(self, directory: Path, poll_interval: float = 0.5):
        """
        Initialize the watcher.

        Args:
            directory: Directory to watch
            poll_interval: Seconds between scans
        """
        self._directory = Path(directory)
        self._poll_interval = poll_interval
        self._seen: dict[str, int] | None = None
        self._started = False
        self._failed: Exception | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def failed(self) -> Exception | None:
        """The error that killed the watch, if any."""
        return self._failed

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _list_files(self) -> dict[str, int]:
        """Map each regular file name to its inode."""
        files = {}
        for entry in self._directory.iterdir():
            try:
                if entry.is_file():
                    files[entry.name] = entry.stat().st_ino
            except FileNotFoundError:
                continue  # removed between listing and stat
        return files

    def establish(self) -> None:
        """
        Take the baseline listing.

        Raises:
            WatcherSetupError: If the directory is missing or the watch was
                already established
        """
        if self._started:
            raise WatcherSetupError(f"Watch on {self._directory} cannot be restarted")
        if not self._directory.is_dir():
            raise WatcherSetupError(f"Watched directory does not exist: {self._directory}")
        self._seen = self._list_files()
        self._started = True

    def poll_once(self) -> list[Path]:
        """
        Scan the directory once.

        Returns:
            Paths of files created since the previous scan, sorted by name

        Raises:
            OSError: If the directory can no longer be listed
        """
        if self._seen is None:
            self.establish()

        current = self._list_files()
        vanished_inodes = {
            inode for name, inode in self._seen.items()
            if name not in current and inode
        }
        created = sorted(
            name for name, inode in current.items()
            if name not in self._seen and inode not in vanished_inodes
        )
        self._seen = current
        return [self._directory / name for name in created]

    def start(self, on_created: FileCallback, on_error: ErrorCallback | None = None) -> None:
        """
        Establish the watch and start polling in a background thread.

        Args:
            on_created: Called with the path of each new file, in name order
            on_error: Called once if the watch dies

        Raises:
            WatcherSetupError: If the directory is missing or the watcher
                was started before
        """
        self.establish()
        self._thread = threading.Thread(
            target=self._run,
            args=(on_created, on_error),
            name=f"watch-{self._directory.name}",
            daemon=True,
        )
        self._thread.start()

    def _run(self, on_created: FileCallback, on_error: ErrorCallback | None) -> None:
        # A handler failure means a delivery could not be recorded; the
        # watch stops rather than skipping the file.
        while not self._stop_event.wait(self._poll_interval):
            try:
                for path in self.poll_once():
                    on_created(path)
            except Exception as e:
                self._failed = e
                if on_error is not None:
                    on_error(e)
                return

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop polling. Only used at process shutdown."""
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
