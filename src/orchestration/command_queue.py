"""
Command Queue - The single serialized execution path.

User commands and watcher deliveries are both handed to one worker
thread that runs them strictly one at a time, in submission order.
Callers block until their command finishes, so every operation is
synchronous from the caller's point of view.
"""

import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable

_STOP = object()


class CommandQueue:
    """
    FIFO of commands drained by one worker thread.

    There is no cancellation: once a command is taken off the queue
    it runs to completion or raises.
    """

    def __init__(self, name: str = "imaging-commands"):
        """
        Initialize the queue and start its worker.

        Args:
            name: Worker thread name
        """
        self._queue: queue.Queue = queue.Queue()
        self._stopped = False
        self._stop_lock = threading.Lock()
        self._worker = threading.Thread(target=self._drain, name=name, daemon=True)
        self._worker.start()

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                future, fn, args, kwargs = item
                if not future.set_running_or_notify_cancel():
                    continue
                try:
                    result = fn(*args, **kwargs)
                except BaseException as e:
                    future.set_exception(e)
                else:
                    future.set_result(result)
            finally:
                self._queue.task_done()

    def in_worker(self) -> bool:
        """Check if the caller is running on the worker thread."""
        return threading.current_thread() is self._worker

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """
        Queue a command without waiting for it.

        Returns:
            Future resolved with the command's result or exception

        Raises:
            RuntimeError: If the queue has been stopped
        """
        with self._stop_lock:
            if self._stopped:
                raise RuntimeError("Command queue is stopped")
            future: Future = Future()
            self._queue.put((future, fn, args, kwargs))
        return future

    def run(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Run a command on the serialized path and wait for the result.

        A command issued from inside another command runs inline,
        since queueing it would deadlock the worker.

        Raises:
            Whatever the command raised
        """
        if self.in_worker():
            return fn(*args, **kwargs)
        return self.submit(fn, *args, **kwargs).result()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Finish queued commands, then stop the worker.

        Safe to call more than once.
        """
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True
            self._queue.put(_STOP)
        if not self.in_worker():
            self._worker.join(timeout)

    @property
    def is_running(self) -> bool:
        """Check if the worker is still accepting commands."""
        return not self._stopped and self._worker.is_alive()
