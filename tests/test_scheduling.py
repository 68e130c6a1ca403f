"""
Tests for the threading scheduler
"""
import threading

import pytest

from integrity_engine.scheduling import ThreadingScheduler


@pytest.fixture
def scheduler():
    scheduler = ThreadingScheduler()
    yield scheduler
    scheduler.shutdown()


class TestThreadingScheduler:
    """Real timers on daemon threads"""

    def test_call_later_fires_once(self, scheduler):
        fired = threading.Event()

        handle = scheduler.call_later(0.01, fired.set)

        assert fired.wait(2)
        assert handle.cancelled

    def test_cancelled_call_later_never_fires(self, scheduler):
        fired = threading.Event()

        handle = scheduler.call_later(0.2, fired.set)
        handle.cancel()

        assert not fired.wait(0.4)

    def test_call_every_repeats_until_cancelled(self, scheduler):
        calls = []
        enough = threading.Event()

        def tick():
            calls.append(1)
            if len(calls) >= 3:
                enough.set()

        handle = scheduler.call_every(0.01, tick)

        assert enough.wait(2)
        handle.cancel()
        assert handle.cancelled

    def test_failing_callback_does_not_stop_interval(self, scheduler):
        calls = []
        enough = threading.Event()

        def tick():
            calls.append(1)
            if len(calls) >= 2:
                enough.set()
            raise RuntimeError("tick failed")

        scheduler.call_every(0.01, tick)

        assert enough.wait(2)

    def test_shutdown_cancels_everything(self, scheduler):
        handles = [scheduler.call_later(5, lambda: None), scheduler.call_every(5, lambda: None)]

        scheduler.shutdown()

        assert all(h.cancelled for h in handles)

    def test_rejects_non_positive_interval(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.call_every(0, lambda: None)
