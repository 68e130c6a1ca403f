"""
Tests for the Proctoring Session lifecycle
"""
import pytest

from conftest import (
    START_TIME, FailingSink, FakeClock, ManualScheduler, StubSource, make_landmarks
)

from integrity_engine.exceptions import (
    InvalidSessionStartError, ResourceUnavailableError, SessionStateError
)
from integrity_engine.models import (
    DetectorFrame, EndReason, FacePrediction, ObjectPrediction, SessionPhase, SignalKey, SignalKind
)
from integrity_engine.report import build_report
from shared_utils.common import timestamp_from_seconds


ATTENTIVE = FacePrediction(face_count=1, landmarks=make_landmarks())
NO_FACE = FacePrediction(face_count=0)
TWO_FACES = FacePrediction(face_count=2, landmarks=make_landmarks())
LOOKING_AWAY = FacePrediction(face_count=1, landmarks=make_landmarks(nose_x=0.9))
DROWSY = FacePrediction(face_count=1, landmarks=make_landmarks(right_eye_y=0.402))
PHONE = (ObjectPrediction("cell phone", 0.6),)


def feed_faces(session, scheduler, prediction, seconds, step=0.5):
    """Deliver the same face prediction every ``step`` seconds, including both ends"""
    confirmed = []
    elapsed = 0.0
    while elapsed <= seconds:
        confirmed.extend(session.on_face_prediction(prediction))
        scheduler.advance(step)
        elapsed += step
    return confirmed


class TestScenarios:
    """End-to-end attempts driven by virtual time"""

    def test_no_face_for_ten_and_a_half_seconds(self, make_session, scheduler):
        session = make_session()
        session.start("cand-1")

        confirmed = feed_faces(session, scheduler, NO_FACE, 10.5)

        assert [e.kind for e in confirmed] == [SignalKind.NO_FACE]
        assert confirmed[0].offset_seconds == pytest.approx(10.0)
        assert session.focus_lost_count == 1
        assert session.integrity_score == 98
        assert session.status == "No face detected (10s)"

    def test_phone_seen_at_zero_one_and_six_seconds(self, make_session, scheduler):
        session = make_session()
        session.start("cand-1")

        events = session.on_object_predictions(PHONE)
        scheduler.advance(1)
        events += session.on_object_predictions(PHONE)
        scheduler.advance(5)
        events += session.on_object_predictions(PHONE)

        assert [e.offset_seconds for e in events] == [0.0, 6.0]
        assert all(e.type_name == "cell phone" for e in events)
        assert events[0].extra == {'score': 0.6}
        assert session.suspicious_item_count == 2
        assert session.integrity_score == 90
        assert session.status == "cell phone detected"

    def test_blank_candidate_never_runs(self, make_session, recorder):
        source = StubSource()
        session = make_session(sources=[source])

        with pytest.raises(InvalidSessionStartError):
            session.start("   ")

        assert session.phase is SessionPhase.IDLE
        assert session.attempt_id == 0
        assert source.started == 0
        assert recorder.started == 0
        assert session.on_face_prediction(NO_FACE) == []
        assert session.integrity_score == 100
        assert session.focus_lost_count == 0

    def test_full_session_without_signals(self, make_session, scheduler, sink):
        session = make_session()
        ticks = []
        session.add_tick_callback(ticks.append)
        session.start("cand-1")

        scheduler.advance(90)

        assert session.phase is SessionPhase.ENDED
        report = session.get_report()
        assert report.duration_seconds == 90
        assert report.duration == "1m 30s"
        assert report.final_score == 100
        assert report.events == ()
        assert report.end_reason is EndReason.DEADLINE
        assert ticks == list(range(1, 91))
        assert sink.reports == [report]

    def test_looking_away_and_drowsiness(self, make_session, scheduler):
        session = make_session()
        session.start("cand-1")

        away = feed_faces(session, scheduler, LOOKING_AWAY, 5)
        session.on_face_prediction(ATTENTIVE)
        drowsy = feed_faces(session, scheduler, DROWSY, 3)

        assert [e.kind for e in away] == [SignalKind.LOOKING_AWAY]
        assert [e.kind for e in drowsy] == [SignalKind.DROWSINESS]
        assert session.focus_lost_count == 1
        assert session.drowsiness_count == 1
        assert session.integrity_score == 95

    def test_second_face_cancels_looking_away(self, make_session, scheduler):
        session = make_session()
        session.start("cand-1")

        feed_faces(session, scheduler, LOOKING_AWAY, 4)
        session.on_face_prediction(TWO_FACES)
        confirmed = feed_faces(session, scheduler, LOOKING_AWAY, 4)

        assert [e.kind for e in confirmed] == []
        assert session.focus_lost_count == 1

    def test_combined_frame(self, make_session):
        session = make_session()
        session.start("cand-1")

        confirmed = session.on_frame(DetectorFrame.from_parts(TWO_FACES, PHONE))

        assert [e.kind for e in confirmed] == [SignalKind.MULTIPLE_FACES, SignalKind.PROHIBITED_OBJECT]
        assert session.integrity_score == 93


class TestEnvironmentSignals:
    """Tab visibility and window focus"""

    def test_tab_change_cooldown(self, make_session, scheduler):
        session = make_session()
        session.start("cand-1")

        first = session.on_visibility_change(True)
        scheduler.advance(5)
        second = session.on_visibility_change(True)
        scheduler.advance(0.5)
        third = session.on_visibility_change(True)

        assert len(first) == 1 and first[0].kind is SignalKind.TAB_CHANGE
        assert second == []
        assert len(third) == 1
        assert session.status == "Tab change / hidden"

    def test_visible_again_sets_focused(self, make_session):
        session = make_session()
        session.start("cand-1")

        assert session.on_visibility_change(False) == []
        assert session.status == "Focused"
        assert session.integrity_score == 100

    def test_window_blur(self, make_session):
        session = make_session()
        session.start("cand-1")

        confirmed = session.on_window_blur()

        assert [e.kind for e in confirmed] == [SignalKind.WINDOW_BLUR]
        assert session.on_window_blur() == []
        assert session.status == "Window lost focus"

    def test_ignored_when_idle(self, make_session):
        session = make_session()

        assert session.on_visibility_change(True) == []
        assert session.on_window_blur() == []


class TestLifecycle:
    """Phase transitions, timers and collaborators"""

    def test_start_moves_to_running(self, make_session, recorder):
        source = StubSource()
        session = make_session(sources=[source])

        attempt = session.start("  cand-1  ")

        assert attempt == 1
        assert session.phase is SessionPhase.RUNNING
        assert session.candidate_id == "cand-1"
        assert session.status == "Monitoring"
        assert source.started == 1
        assert recorder.started == 1

    def test_manual_end(self, make_session, scheduler, recorder):
        source = StubSource()
        session = make_session(sources=[source])
        session.start("cand-1")
        scheduler.advance(42.7)

        report = session.end()

        assert report.end_reason is EndReason.MANUAL
        assert report.duration_seconds == 42
        assert session.status == "Session ended"
        assert source.stopped == 1
        assert recorder.stopped == 1
        assert session.recording == b"video-bytes"

    def test_end_cancels_timers_and_pending(self, make_session, scheduler):
        session = make_session()
        session.start("cand-1")
        session.on_face_prediction(NO_FACE)

        session.end("manual")

        assert scheduler.active_timers() == []
        assert session.debouncer.get_statistics()['pending_signals'] == 0
        scheduler.advance(120)
        assert session.end_reason is EndReason.MANUAL

    def test_end_when_not_running_is_noop(self, make_session, sink):
        session = make_session()
        assert session.end() is None

        session.start("cand-1")
        session.end()
        assert session.end() is None
        assert len(sink.reports) == 1

    def test_detections_after_end_are_ignored(self, make_session):
        session = make_session()
        session.start("cand-1")
        session.end()

        assert session.on_object_predictions(PHONE) == []
        assert session.suspicious_item_count == 0

    def test_start_while_running_or_ended_is_rejected(self, make_session):
        session = make_session()
        session.start("cand-1")

        with pytest.raises(SessionStateError):
            session.start("cand-2")

        session.end()
        with pytest.raises(SessionStateError):
            session.start("cand-2")

    def test_reset_allows_new_attempt(self, make_session):
        session = make_session()
        session.start("cand-1")
        session.on_window_blur()
        session.end()

        session.reset()
        assert session.phase is SessionPhase.IDLE
        assert session.candidate_id is None

        attempt = session.start("cand-2")
        assert attempt == 2
        assert session.integrity_score == 100
        assert len(session.event_log) == 0
        assert session.on_window_blur() != []

    def test_reset_while_running_is_rejected(self, make_session):
        session = make_session()
        session.start("cand-1")

        with pytest.raises(SessionStateError):
            session.reset()

    def test_stale_attempt_callbacks_are_dropped(self, make_session):
        session = make_session()
        first = session.start("cand-1")
        session.end()
        session.reset()
        second = session.start("cand-1")

        assert session.on_face_prediction(TWO_FACES, attempt_id=first) == []
        assert session.on_object_predictions(PHONE, attempt_id=first) == []
        assert session.integrity_score == 100
        assert len(session.on_face_prediction(TWO_FACES, attempt_id=second)) == 1

    def test_late_deadline_does_not_end_next_attempt(self, make_session, scheduler):
        session = make_session()

        def restart_at_deadline(elapsed):
            if elapsed == 90 and session.candidate_id == "alice":
                session.end()
                session.reset()
                session.start("bob")

        session.add_tick_callback(restart_at_deadline)
        session.start("alice")
        scheduler.advance(90)

        assert session.phase is SessionPhase.RUNNING
        assert session.candidate_id == "bob"
        assert session.attempt_id == 2

    def test_end_with_stale_attempt_is_ignored(self, make_session):
        session = make_session()
        first = session.start("cand-1")
        session.end()
        session.reset()
        session.start("cand-2")

        assert session.end(EndReason.DEADLINE, attempt_id=first) is None
        assert session.is_running

    def test_deadline_reports_full_duration(self, make_session, scheduler):
        session = make_session()
        session.start("cand-1")
        scheduler.advance(89.6)

        report = session.end(EndReason.DEADLINE)

        assert report.duration_seconds == 90
        assert report.duration == "1m 30s"

    def test_source_failure_leaves_session_idle(self, make_session, recorder):
        good = StubSource("good")
        bad = StubSource("bad", fail_on_start=True)
        session = make_session(sources=[good, bad])

        with pytest.raises(ResourceUnavailableError):
            session.start("cand-1")

        assert session.phase is SessionPhase.IDLE
        assert not session.is_running
        assert good.started == 1 and good.stopped == 1
        assert recorder.started == 1 and recorder.stopped == 1

    def test_unavailable_source_is_rejected(self, make_session):
        session = make_session(sources=[StubSource(available=False)])

        with pytest.raises(ResourceUnavailableError):
            session.start("cand-1")
        assert session.phase is SessionPhase.IDLE

    def test_persistence_failure_does_not_affect_state(self, make_session):
        failing = FailingSink()
        session = make_session(persistence=failing)
        session.start("cand-1")

        confirmed = session.on_window_blur()
        report = session.end()

        assert len(confirmed) == 1
        assert report.final_score == 98
        assert failing.attempts == 2

    def test_events_are_persisted_with_candidate(self, make_session, sink):
        session = make_session()
        session.start("cand-7")

        event = session.on_window_blur()[0]

        assert sink.events == [("cand-7", event)]


class TestClocks:
    """Wall-clock steps never affect debouncing or elapsed time"""

    def make_split_session(self, make_session):
        wall = FakeClock()
        monotonic = FakeClock(now=1000.0)
        scheduler = ManualScheduler(monotonic)
        session = make_session(clock=wall, monotonic=monotonic, scheduler=scheduler)
        return session, wall, scheduler

    def test_backward_wall_step_keeps_cooldown(self, make_session):
        session, wall, scheduler = self.make_split_session(make_session)
        session.start("cand-1")
        first = session.on_window_blur()

        wall.advance(-3600)
        scheduler.advance(5.5)
        second = session.on_window_blur()

        assert len(first) == 1 and len(second) == 1
        assert second[0].offset_seconds == 5.5
        assert second[0].timestamp == timestamp_from_seconds(START_TIME - 3600)

    def test_forward_wall_step_does_not_confirm_early(self, make_session):
        session, wall, scheduler = self.make_split_session(make_session)
        session.start("cand-1")
        session.on_face_prediction(NO_FACE)

        wall.advance(3600)
        scheduler.advance(2)

        assert session.on_face_prediction(NO_FACE) == []
        assert session.debouncer.is_pending(SignalKey.for_kind(SignalKind.NO_FACE))

    def test_elapsed_follows_monotonic_clock(self, make_session):
        session, wall, scheduler = self.make_split_session(make_session)
        session.start("cand-1")
        wall.advance(-60)
        scheduler.advance(30.4)

        report = session.end()

        assert report.duration_seconds == 30
        assert report.started_at == timestamp_from_seconds(START_TIME)


class TestReportAndCallbacks:
    """Report stability and live-display hooks"""

    def test_report_matches_state_at_end(self, make_session, scheduler):
        session = make_session()
        session.start("cand-1")
        session.on_object_predictions(PHONE)
        scheduler.advance(2)
        session.on_window_blur()
        report = session.end()

        assert report.candidate_id == "cand-1"
        assert report.final_score == 93
        assert report.suspicious_item_count == 1
        assert report.focus_lost_count == 1
        assert [e.type_name for e in report.events] == ["cell phone", "window_blur"]
        assert build_report(session.snapshot()) == report
        assert session.get_report() is report

    def test_report_unavailable_before_end(self, make_session):
        session = make_session()
        with pytest.raises(SessionStateError):
            session.get_report()

        session.start("cand-1")
        with pytest.raises(SessionStateError):
            session.get_report()
        with pytest.raises(SessionStateError):
            build_report(session.snapshot())

    def test_callbacks_receive_events_and_report(self, make_session):
        session = make_session()
        events, reports = [], []
        session.add_event_callback(events.append)
        session.add_report_callback(reports.append)
        session.start("cand-1")

        blur = session.on_window_blur()
        report = session.end()

        assert events == blur
        assert reports == [report]

    def test_failing_callback_is_isolated(self, make_session):
        session = make_session()

        def broken(_):
            raise RuntimeError("display gone")

        received = []
        session.add_event_callback(broken)
        session.add_event_callback(received.append)
        session.start("cand-1")

        session.on_window_blur()

        assert len(received) == 1

    def test_removed_callback_not_called(self, make_session):
        session = make_session()
        received = []
        session.add_event_callback(received.append)
        session.remove_event_callback(received.append)
        session.start("cand-1")

        session.on_window_blur()

        assert received == []

    def test_status_summary(self, make_session, scheduler):
        session = make_session()
        session.start("cand-1")
        scheduler.advance(75)
        session.on_window_blur()

        status = session.get_status()

        assert status['phase'] == "running"
        assert status['elapsed'] == "01:15"
        assert status['integrity_score'] == 98
        assert session.recent_events(limit=1)[0].kind is SignalKind.WINDOW_BLUR
