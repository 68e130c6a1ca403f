"""
Pytest Configuration for Integrity Monitor Tests
"""
import os
import sys
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from integrity_engine.interfaces import DetectionSource, PersistenceSink, RecordingAdapter
from integrity_engine.models import MonitorConfiguration
from integrity_engine.scheduling import Scheduler, TimerHandle
from integrity_engine.session import ProctoringSession


START_TIME = 1_700_000_000.0


class FakeClock:
    """Clock returning a settable time in seconds"""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualTimer(TimerHandle):

    def __init__(self, due, callback, interval, seq):
        self.due = due
        self.callback = callback
        self.interval = interval
        self.seq = seq
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self):
        return self._cancelled


class ManualScheduler(Scheduler):
    """Virtual-time scheduler: timers fire only when the test advances time"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers = []
        self._seq = 0

    def _add(self, delay, callback, interval):
        self._seq += 1
        timer = ManualTimer(self.clock.now + delay, callback, interval, self._seq)
        self.timers.append(timer)
        return timer

    def call_later(self, delay_seconds, callback):
        return self._add(delay_seconds, callback, None)

    def call_every(self, interval_seconds, callback):
        return self._add(interval_seconds, callback, interval_seconds)

    def active_timers(self):
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in order"""
        target = self.clock.now + seconds
        while True:
            due = [t for t in self.active_timers() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.clock.now = timer.due
            if timer.interval is None:
                timer.cancel()
            else:
                timer.due += timer.interval
            timer.callback()
        self.clock.now = target


class RecordingSink(PersistenceSink):
    """Keeps everything it is asked to persist"""

    def __init__(self):
        self.events = []
        self.reports = []

    def persist_event(self, event, candidate_id):
        self.events.append((candidate_id, event))

    def persist_report(self, report):
        self.reports.append(report)


class FailingSink(PersistenceSink):
    """Raises on every write"""

    def __init__(self):
        self.attempts = 0

    def persist_event(self, event, candidate_id):
        self.attempts += 1
        raise IOError("storage offline")

    def persist_report(self, report):
        self.attempts += 1
        raise IOError("storage offline")


class StubSource(DetectionSource):
    """Detection source recording its start/stop calls"""

    def __init__(self, name="stub", available=True, fail_on_start=False):
        self.name = name
        self.available = available
        self.fail_on_start = fail_on_start
        self.started = 0
        self.stopped = 0

    def get_source_name(self):
        return self.name

    def is_available(self):
        return self.available

    def start_detection(self):
        if self.fail_on_start:
            raise RuntimeError(f"{self.name} cannot open device")
        self.started += 1

    def stop_detection(self):
        self.stopped += 1


class StubRecorder(RecordingAdapter):
    """Recorder returning a fixed blob"""

    def __init__(self, blob=b"video-bytes"):
        self.blob = blob
        self.started = 0
        self.stopped = 0
        self.frames = []

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1
        return self.blob

    def write_frame(self, frame):
        self.frames.append(frame)


@pytest.fixture
def clock():
    """Fake clock starting at a fixed epoch time"""
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    """Virtual-time scheduler sharing the fake clock"""
    return ManualScheduler(clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def recorder():
    return StubRecorder()


@pytest.fixture
def config():
    return MonitorConfiguration()


@pytest.fixture
def make_session(clock, scheduler, sink, recorder, config):
    """Factory for sessions wired to the fake clock and scheduler"""
    def factory(**overrides):
        kwargs = {
            'config': config,
            'sources': [],
            'recorder': recorder,
            'persistence': sink,
            'scheduler': scheduler,
            'clock': clock,
            'monotonic': clock,
        }
        kwargs.update(overrides)
        return ProctoringSession(**kwargs)
    return factory


@pytest.fixture(autouse=True)
def clear_proctor_environment(monkeypatch):
    """Keep PROCTOR_* variables from the outer environment out of tests"""
    for name in list(os.environ):
        if name.startswith('PROCTOR_'):
            monkeypatch.delenv(name, raising=False)


def make_landmarks(nose_x=0.5, left_eye_y=0.40, right_eye_y=0.45, count=468):
    """Face Mesh style landmark tuple with the points the classifier reads"""
    points = [(0.5, 0.5)] * count
    for index, point in ((1, (nose_x, 0.55)), (33, (0.4, left_eye_y)), (263, (0.6, right_eye_y))):
        if index < count:
            points[index] = point
    return tuple(points)
