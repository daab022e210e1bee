import logging
import threading
from collections.abc import Callable
from typing import Self

logger = logging.getLogger(__name__)


class PeriodicRefresh:
    """Run ``refresh`` every ``interval`` seconds until stopped.

    Stop conditions: ``stop()``, leaving the ``with`` block, or
    ``should_stop()`` returning true before a tick. A tick is skipped while the
    previous refresh is still running, so at most one refresh is in flight.
    """

    def __init__(
        self,
        refresh: Callable[[], None],
        *,
        interval: float,
        name: str = "periodic-refresh",
        should_stop: Callable[[], bool] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._refresh = refresh
        self.interval = interval
        self.name = name
        self._should_stop = should_stop or (lambda: False)
        self._on_error = on_error
        self._stop_event = threading.Event()
        self._busy = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> bool:
        """Run one refresh now. Returns False when skipped or stopped."""
        if self._stop_event.is_set():
            return False
        if self._should_stop():
            logger.debug("%s: stop condition reached", self.name)
            self._stop_event.set()
            return False
        if not self._busy.acquire(blocking=False):
            logger.debug("%s: previous refresh still running; tick skipped", self.name)
            return False
        try:
            self._refresh()
        except Exception as exc:
            logger.exception("%s: refresh failed", self.name)
            if self._on_error is not None:
                self._on_error(exc)
        finally:
            self._busy.release()
        return True

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            if self._stop_event.wait(self.interval):
                break
        logger.debug("%s: stopped", self.name)

    def start(self) -> Self:
        if self.running:
            return self
        if self._stop_event.is_set():
            raise RuntimeError(f"{self.name} was stopped and cannot be restarted")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until stopped; returns True if the task has stopped."""
        return self._stop_event.wait(timeout)

    def __enter__(self) -> Self:
        return self.start()

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.stop()


__all__ = ["PeriodicRefresh"]
