"""Serial event dispatcher.

Every state change of the sensor slots, the recording session and the
activity classifier runs through one EventDispatcher, so those objects have
a single writer no matter which thread a transport callback arrives on.
"""

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Runs submitted callables one at a time in FIFO order.

    In threaded mode a single worker thread drains the queue. In inline mode
    (used by tests) callables run immediately on the calling thread under a
    reentrant lock.
    """

    def __init__(self, inline: bool = False, name: str = "EventDispatcher"):
        self.inline = inline
        self.name = name
        self._queue: "queue.Queue[Optional[tuple]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.RLock()

    def start(self):
        """Start the worker thread (no-op in inline mode)."""
        if self.inline:
            return
        if self._worker and self._worker.is_alive():
            logger.warning("Dispatcher already running")
            return
        self._worker = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._worker.start()
        logger.info(f"Started {self.name}")

    def stop(self, timeout: float = 5.0):
        """Stop the worker after already queued events have run."""
        if not self._worker or not self._worker.is_alive():
            return
        self._queue.put(None)
        self._worker.join(timeout=timeout)
        logger.info(f"Stopped {self.name}")

    @property
    def running(self) -> bool:
        return self.inline or bool(self._worker and self._worker.is_alive())

    def on_worker_thread(self) -> bool:
        return self._worker is not None and threading.current_thread() is self._worker

    def submit(self, fn: Callable[..., Any], *args, **kwargs):
        """Queue a callable without waiting for it.

        Exceptions raised by the callable are logged and dropped.
        """
        if self.inline:
            with self._lock:
                self._invoke(fn, args, kwargs, None)
            return
        self._queue.put((fn, args, kwargs, None))

    def call(self, fn: Callable[..., Any], *args, timeout: Optional[float] = None, **kwargs) -> Any:
        """Run a callable on the dispatcher and wait for its result.

        Exceptions raised by the callable are re-raised in the caller.
        """
        if self.inline or self.on_worker_thread():
            with self._lock:
                return fn(*args, **kwargs)

        if not self.running:
            raise RuntimeError(f"{self.name} is not running")

        future: Future = Future()
        self._queue.put((fn, args, kwargs, future))
        return future.result(timeout=timeout)

    def _run(self):
        while True:
            item = self._queue.get()
            if item is None:
                return
            fn, args, kwargs, future = item
            with self._lock:
                self._invoke(fn, args, kwargs, future)

    def _invoke(self, fn, args, kwargs, future: Optional[Future]):
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            if future is not None:
                future.set_exception(e)
            else:
                logger.exception(f"Error in dispatched {getattr(fn, '__name__', fn)}: {e}")
            return
        if future is not None:
            future.set_result(result)
