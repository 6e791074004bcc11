"""
Single-threaded event dispatch for the capture session.

Camera, microphone and recognizer threads never touch session state; they
post callbacks here and one dispatcher thread runs them in order.
"""
from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Repeater:
    """Handle for a periodic callback. Ticks queued before cancel() are dropped."""
    def __init__(self, loop: "EventLoop", interval: float, fn: Callable[[], Any]):
        self.interval = float(interval)
        self.cancelled = False
        self._loop = loop
        self._fn = fn
        self._wake = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> "Repeater":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self.cancelled = True
        self._wake.set()

    def _fire(self) -> None:
        if not self.cancelled:
            self._fn()

    def _run(self) -> None:
        while not self._wake.wait(self.interval):
            self._loop.post(self._fire)


class EventLoop:
    def __init__(self, name: str = "capture-loop"):
        self.name = name
        self._queue: "queue.Queue[Optional[tuple]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    # ---- lifecycle ----
    def start(self) -> "EventLoop":
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def close(self, timeout: float = 2.0) -> None:
        if self._thread is None:
            return
        self._queue.put(None)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None

    # ---- scheduling ----
    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._queue.put((fn, args))

    def call(self, fn: Callable[..., Any], *args: Any, timeout: float | None = 30.0) -> Any:
        """Run fn on the loop thread and wait for its result."""
        if threading.current_thread() is self._thread:
            return fn(*args)
        fut: Future = Future()

        def _invoke():
            try:
                fut.set_result(fn(*args))
            except BaseException as e:
                fut.set_exception(e)

        self.post(_invoke)
        return fut.result(timeout=timeout)

    def call_every(self, interval: float, fn: Callable[[], Any]) -> Repeater:
        return Repeater(self, interval, fn).start()

    def run_in_background(self, fn: Callable[[Any], Any], arg: Any,
                          on_done: Callable[[Any, Optional[BaseException]], Any]) -> None:
        """Run fn(arg) on a worker thread; on_done(result, error) runs back on the loop."""
        def _work():
            try:
                result = fn(arg)
            except Exception as e:
                logger.debug(f"[loop] background call failed: {e!r}")
                self.post(on_done, None, e)
                return
            self.post(on_done, result, None)

        threading.Thread(target=_work, daemon=True).start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                break
            fn, args = item
            try:
                fn(*args)
            except Exception:
                logger.exception(f"[loop] callback {getattr(fn, '__name__', fn)!s} failed")
