"""
Tests for the serialized command path.
"""

import sys
import threading
import time
from pathlib import Path

import pytest

# Add src to path
_src_path = Path(__file__).parent.parent.parent / "src"
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from orchestration.command_queue import CommandQueue


@pytest.fixture
def command_queue():
    q = CommandQueue(name="test-commands")
    yield q
    q.stop()


class TestCommandQueue:
    """Tests for CommandQueue."""

    def test_run_returns_result(self, command_queue):
        """run() waits and hands back the result."""
        assert command_queue.run(lambda a, b: a + b, 2, 3) == 5

    def test_run_propagates_exception(self, command_queue):
        """Errors raised by the command reach the caller."""
        def boom():
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            command_queue.run(boom)

    def test_commands_run_on_worker(self, command_queue):
        """Commands run on the worker thread, not the caller's."""
        assert command_queue.run(command_queue.in_worker) is True
        assert command_queue.in_worker() is False

    def test_fifo_order(self, command_queue):
        """Commands run in submission order."""
        seen: list[int] = []
        futures = [command_queue.submit(seen.append, i) for i in range(20)]
        for future in futures:
            future.result()

        assert seen == list(range(20))

    def test_commands_never_overlap(self, command_queue):
        """Only one command runs at a time, whatever thread submits it."""
        active = 0
        max_active = 0
        lock = threading.Lock()

        def command():
            nonlocal active, max_active
            with lock:
                active += 1
                max_active = max(max_active, active)
            time.sleep(0.001)
            with lock:
                active -= 1

        def caller():
            for _ in range(10):
                command_queue.run(command)

        threads = [threading.Thread(target=caller) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert max_active == 1

    def test_nested_run_executes_inline(self, command_queue):
        """A command that issues another command must not deadlock."""
        def outer():
            return command_queue.run(lambda: "inner")

        assert command_queue.run(outer) == "inner"

    def test_stop_finishes_queued_work(self):
        """Commands queued before stop() still run."""
        q = CommandQueue()
        seen: list[int] = []
        for i in range(5):
            q.submit(seen.append, i)

        q.stop()

        assert seen == [0, 1, 2, 3, 4]
        assert q.is_running is False

    def test_submit_after_stop_rejected(self):
        """A stopped queue accepts no more commands."""
        q = CommandQueue()
        q.stop()
        q.stop()

        with pytest.raises(RuntimeError, match="stopped"):
            q.submit(lambda: None)
