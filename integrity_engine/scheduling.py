"""
Scheduling - One-shot and repeating timers used by the session.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List


logger = logging.getLogger(__name__)


class TimerHandle(ABC):
    """Cancellable reference to a scheduled callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent any further invocation. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class Scheduler(ABC):
    """Abstract source of timers, replaceable by a virtual clock in tests."""

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay_seconds``."""
        pass

    @abstractmethod
    def call_every(self, interval_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` every ``interval_seconds`` until cancelled."""
        pass

    def shutdown(self) -> None:
        """Cancel everything still scheduled."""
        pass


class _ThreadTimerHandle(TimerHandle):

    def __init__(self):
        self._stop_event = threading.Event()

    def cancel(self) -> None:
        self._stop_event.set()

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()


class ThreadingScheduler(Scheduler):
    """
    Scheduler backed by daemon threads.

    Each timer owns a thread that waits on its cancel event, so cancelling
    wakes the thread immediately instead of leaving it asleep.
    """

    def __init__(self, name: str = "proctor-timer"):
        self.name = name
        self._handles: List[_ThreadTimerHandle] = []
        self._lock = threading.Lock()

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _ThreadTimerHandle()

        def run():
            if handle._stop_event.wait(max(0.0, delay_seconds)):
                return
            handle.cancel()
            self._invoke(callback)

        self._start(handle, run, "once")
        return handle

    def call_every(self, interval_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval_seconds}")
        handle = _ThreadTimerHandle()

        def run():
            while not handle._stop_event.wait(interval_seconds):
                self._invoke(callback)

        self._start(handle, run, "every")
        return handle

    def shutdown(self) -> None:
        with self._lock:
            handles, self._handles = self._handles, []
        for handle in handles:
            handle.cancel()

    def _start(self, handle: _ThreadTimerHandle, target: Callable[[], None], kind: str) -> None:
        with self._lock:
            self._handles = [h for h in self._handles if not h.cancelled]
            self._handles.append(handle)
        thread = threading.Thread(target=target, name=f"{self.name}-{kind}", daemon=True)
        thread.start()

    @staticmethod
    def _invoke(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as e:
            logger.error(f"Scheduled callback failed: {e}", exc_info=True)
