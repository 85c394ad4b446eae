"""
Response Scanner - Recognize response drop files by name.

Responsible for deciding which files in a watched directory are
responses from the external system, and handing those to the
orchestrator as delivery confirmations. File contents are never read
and files are never moved or deleted.
"""

import sys
from pathlib import Path
from typing import Callable

# Add src to path
_src_path = Path(__file__).parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from domain.value_objects import ResponseFile, WatchTarget
from orchestration.directory_watcher import DirectoryWatcher

DeliveryRecorder = Callable[[str], "str | None"]


class ResponseScanner:
    """
    Classifies files of one watch target and records deliveries.

    Names without a recognized suffix are ignored without a trace -
    the directory may receive unrelated files.
    """

    def __init__(
        self,
        target: WatchTarget,
        record_delivery: DeliveryRecorder
    ):
        """
        Initialize the response scanner.

        Args:
            target: Directory and suffixes to recognize
            record_delivery: Called with the base file name of each response
        """
        self._target = target
        self._record_delivery = record_delivery

    @property
    def target(self) -> WatchTarget:
        return self._target

    def classify(self, file_name: str) -> ResponseFile | None:
        """
        Check whether a file name is a response file for this target.

        Returns:
            ResponseFile with the derived order id, or None
        """
        return ResponseFile.from_name(file_name, self._target.suffixes)

    def handle_created(self, path: Path) -> str | None:
        """
        React to a newly created file.

        Args:
            path: Path of the created file

        Returns:
            Order id the delivery was recorded for, or None if ignored
        """
        response = self.classify(path.name)
        if response is None:
            return None
        return self._record_delivery(response.file_name)

    def scan_for_responses(self) -> list[ResponseFile]:
        """
        List the response files currently in the directory.

        Returns:
            Recognized response files sorted by name (empty if the
            directory doesn't exist)
        """
        directory = self._target.directory
        if not directory.exists():
            return []

        responses = []
        for path in sorted(directory.iterdir()):
            if not path.is_file():
                continue
            response = self.classify(path.name)
            if response is not None:
                responses.append(response)
        return responses

    def count_responses(self) -> int:
        """Count response files without building a list for display."""
        return len(self.scan_for_responses())

    def attach(
        self,
        poll_interval: float,
        on_error: Callable[[Exception], None] | None = None
    ) -> DirectoryWatcher:
        """
        Start watching the target directory.

        Args:
            poll_interval: Seconds between scans
            on_error: Called once if the watch dies

        Returns:
            The running watcher

        Raises:
            WatcherSetupError: If the directory does not exist
        """
        watcher = DirectoryWatcher(self._target.directory, poll_interval)
        watcher.start(self.handle_created, on_error)
        return watcher
