"""
Proctoring Session - Lifecycle state machine of one monitored exam attempt.

The session owns the running flag, the elapsed-time tick, the deadline timer
and every callback. Detector callbacks, clock ticks and environment signals
all mutate state under a single re-entrant lock; collaborators (sources,
recorder, persistence, display callbacks) are always called outside it.
"""

import logging
import math
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from shared_utils.common import timestamp_from_seconds
from shared_utils.validation import validate_candidate_id
from .debouncer import SignalDebouncer
from .event_log import EventLog
from .exceptions import (
    InvalidSessionStartError, ResourceUnavailableError, SessionStateError
)
from .interfaces import DetectionSource, PersistenceSink, RecordingAdapter
from .models import (
    ConfirmedSignal, DetectorFrame, EndReason, FacePrediction, MonitorConfiguration,
    Report, SessionPhase, SessionSnapshot, SignalKey, SignalKind
)
from .report import build_report, format_elapsed
from .scheduling import Scheduler, ThreadingScheduler, TimerHandle
from .scoring import IntegrityScorer
from .signals import SignalClassifier


logger = logging.getLogger(__name__)

STATUS_IDLE = "Idle"
STATUS_INITIALIZING = "Initializing proctoring..."
STATUS_MONITORING = "Monitoring"
STATUS_FOCUSED = "Focused"
STATUS_ENDED = "Session ended"

STATUS_TEXTS = {
    SignalKind.NO_FACE: "No face detected (10s)",
    SignalKind.MULTIPLE_FACES: "Multiple faces detected",
    SignalKind.LOOKING_AWAY: "Looking away (5s)",
    SignalKind.DROWSINESS: "Drowsiness detected (3s)",
    SignalKind.TAB_CHANGE: "Tab change / hidden",
    SignalKind.WINDOW_BLUR: "Window lost focus",
}


class ProctoringSession:
    """
    Monitors one candidate from start to the final report.

    Phases move idle -> running -> ended, and ``reset`` returns an ended
    session to idle for the next attempt.
    """

    def __init__(
        self,
        config: Optional[MonitorConfiguration] = None,
        sources: Optional[Iterable[DetectionSource]] = None,
        recorder: Optional[RecordingAdapter] = None,
        persistence: Optional[PersistenceSink] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic
    ):
        """
        Initialize a session.

        Args:
            config: Monitor configuration (defaults when None)
            sources: Detection sources started and stopped with each attempt
            recorder: Optional video recorder
            persistence: Optional sink for events and the final report
            scheduler: Timer provider (daemon threads when None)
            clock: Returns wall-clock seconds, used for event and report timestamps
            monotonic: Returns monotonic seconds, used for debouncing and the deadline
        """
        self.config = config or MonitorConfiguration()
        self.sources: List[DetectionSource] = list(sources or [])
        self.recorder = recorder
        self.persistence = persistence
        self.scheduler = scheduler or ThreadingScheduler()
        self.clock = clock
        self.monotonic = monotonic

        self.classifier = SignalClassifier(self.config)
        self.debouncer = SignalDebouncer(self.config)
        self.scorer = IntegrityScorer()
        self.event_log = EventLog()

        self.lock = threading.RLock()
        self.phase = SessionPhase.IDLE
        self.is_running = False
        self.attempt_id = 0
        self.candidate_id: Optional[str] = None
        self.started_at: Optional[float] = None
        self.ended_at: Optional[float] = None
        self._started_monotonic: Optional[float] = None
        self.elapsed_seconds = 0
        self.end_reason: Optional[EndReason] = None
        self.status = STATUS_IDLE
        self.recording: Optional[bytes] = None
        self.report: Optional[Report] = None

        self._tick_handle: Optional[TimerHandle] = None
        self._deadline_handle: Optional[TimerHandle] = None

        # Live-display hooks
        self.event_callbacks: List[Callable[[ConfirmedSignal], None]] = []
        self.tick_callbacks: List[Callable[[int], None]] = []
        self.report_callbacks: List[Callable[[Report], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, candidate_id: str) -> int:
        """
        Start monitoring a candidate.

        Args:
            candidate_id: Candidate identifier, required and non-blank

        Returns:
            Identifier of the new attempt

        Raises:
            SessionStateError: If the session is not idle
            InvalidSessionStartError: If the candidate identifier is blank
            ResourceUnavailableError: If the recorder or a source fails to start
        """
        with self.lock:
            if self.phase is not SessionPhase.IDLE:
                raise SessionStateError(f"Cannot start a session that is {self.phase.value}")

            candidate = validate_candidate_id(candidate_id)
            if candidate is None:
                raise InvalidSessionStartError("Candidate identifier is required")

            self.attempt_id += 1
            attempt = self.attempt_id
            self.status = STATUS_INITIALIZING
            try:
                self._start_resources()
            except ResourceUnavailableError:
                self.status = STATUS_IDLE
                raise

            self.debouncer.reset()
            self.scorer.reset()
            self.event_log.clear()
            self.candidate_id = candidate
            self.started_at = self.clock()
            self._started_monotonic = self.monotonic()
            self.ended_at = None
            self.elapsed_seconds = 0
            self.end_reason = None
            self.recording = None
            self.report = None

            self.phase = SessionPhase.RUNNING
            self.is_running = True
            self.status = STATUS_MONITORING

            self._tick_handle = self.scheduler.call_every(
                self.config.tick_interval_seconds, lambda: self._on_tick(attempt)
            )
            self._deadline_handle = self.scheduler.call_later(
                self.config.session_duration_seconds, lambda: self._on_deadline(attempt)
            )

        logger.info(f"Session started for {candidate} (attempt {attempt})")
        return attempt

    def _start_resources(self) -> None:
        started: List[DetectionSource] = []
        recorder_started = False
        try:
            if self.recorder is not None:
                self.recorder.start()
                recorder_started = True
            for source in self.sources:
                if not source.is_available():
                    raise ResourceUnavailableError(
                        f"Detection source {source.get_source_name()} is not available"
                    )
                source.start_detection()
                started.append(source)
        except Exception as e:
            logger.error(f"Failed to acquire monitoring resources: {e}")
            for source in reversed(started):
                self._safe_stop_source(source)
            if recorder_started:
                try:
                    self.recorder.stop()
                except Exception as stop_error:
                    logger.warning(f"Error stopping recorder after failed start: {stop_error}")
            if isinstance(e, ResourceUnavailableError):
                raise
            raise ResourceUnavailableError(str(e)) from e

    def end(self, reason=EndReason.MANUAL, attempt_id: Optional[int] = None) -> Optional[Report]:
        """
        End the running attempt and build its report.

        Args:
            reason: EndReason or its string value ("manual" or "deadline")
            attempt_id: Only end if this attempt is still the running one

        Returns:
            The final report, or None if the session was not running
        """
        reason = EndReason(reason)
        with self.lock:
            if not self._accepts(attempt_id):
                return None

            self.is_running = False
            self._cancel_timers()
            self.debouncer.cancel_pending()

            self.ended_at = self.clock()
            duration = math.floor(self.config.session_duration_seconds)
            if reason is EndReason.DEADLINE:
                self.elapsed_seconds = duration
            else:
                running_for = max(0.0, self.monotonic() - self._started_monotonic)
                self.elapsed_seconds = min(math.floor(running_for), duration)
            self.end_reason = reason
            self.phase = SessionPhase.ENDED
            self.status = STATUS_ENDED

            report = build_report(self._snapshot())
            self.report = report

        logger.info(
            f"Session for {report.candidate_id} ended ({reason.value}) after {report.duration}, "
            f"score {report.final_score}, {len(report.events)} events"
        )

        for source in self.sources:
            self._safe_stop_source(source)

        if self.recorder is not None:
            try:
                self.recording = self.recorder.stop()
            except Exception as e:
                logger.error(f"Error stopping recorder: {e}")

        if self.persistence is not None:
            try:
                self.persistence.persist_report(report)
            except Exception as e:
                logger.error(f"Failed to persist report: {e}")

        self._notify(self.report_callbacks, report)
        return report

    def reset(self) -> None:
        """Return an ended session to idle so a new attempt can start."""
        with self.lock:
            if self.phase is SessionPhase.RUNNING:
                raise SessionStateError("Cannot reset a running session")
            self.phase = SessionPhase.IDLE
            self.candidate_id = None
            self.report = None
            self.status = STATUS_IDLE

    def _cancel_timers(self) -> None:
        for handle in (self._tick_handle, self._deadline_handle):
            if handle is not None:
                handle.cancel()
        self._tick_handle = None
        self._deadline_handle = None

    def _on_tick(self, attempt: int) -> None:
        with self.lock:
            if not self._accepts(attempt):
                return
            running_for = self.monotonic() - self._started_monotonic
            self.elapsed_seconds = math.floor(max(0.0, running_for))
            elapsed = self.elapsed_seconds
            deadline_passed = running_for >= self.config.session_duration_seconds

        self._notify(self.tick_callbacks, elapsed)
        if deadline_passed:
            self.end(EndReason.DEADLINE, attempt)

    def _on_deadline(self, attempt: int) -> None:
        self.end(EndReason.DEADLINE, attempt)

    def _safe_stop_source(self, source: DetectionSource) -> None:
        try:
            source.stop_detection()
        except Exception as e:
            logger.error(f"Error stopping {source.get_source_name()}: {e}")

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def on_face_prediction(
        self, prediction: FacePrediction, attempt_id: Optional[int] = None
    ) -> List[ConfirmedSignal]:
        """Feed one face-landmark result. Returns the signals it confirmed."""
        with self.lock:
            if not self._accepts(attempt_id):
                return []
            confirmed = self._process_face(prediction, self.monotonic())
        self._dispatch(confirmed)
        return confirmed

    def on_object_predictions(
        self, predictions: Iterable, attempt_id: Optional[int] = None
    ) -> List[ConfirmedSignal]:
        """Feed one object-detector result. Returns the signals it confirmed."""
        with self.lock:
            if not self._accepts(attempt_id):
                return []
            confirmed = self._process_objects(predictions, self.monotonic())
        self._dispatch(confirmed)
        return confirmed

    def on_frame(
        self, frame: DetectorFrame, attempt_id: Optional[int] = None
    ) -> List[ConfirmedSignal]:
        """Feed a combined face and object result for one frame."""
        with self.lock:
            if not self._accepts(attempt_id):
                return []
            now = self.monotonic()
            confirmed = self._process_face(frame.face_part(), now)
            confirmed.extend(self._process_objects(frame.object_predictions, now))
        self._dispatch(confirmed)
        return confirmed

    def on_visibility_change(self, hidden: bool) -> List[ConfirmedSignal]:
        """Page visibility changed; hiding it counts as a tab change."""
        with self.lock:
            if not self.is_running:
                return []
            if not hidden:
                self.status = STATUS_FOCUSED
                return []
            confirmed = self._observe(SignalKey.for_kind(SignalKind.TAB_CHANGE), True, self.monotonic())
        self._dispatch(confirmed)
        return confirmed

    def on_window_blur(self) -> List[ConfirmedSignal]:
        """The exam window lost focus."""
        with self.lock:
            if not self.is_running:
                return []
            confirmed = self._observe(SignalKey.for_kind(SignalKind.WINDOW_BLUR), True, self.monotonic())
        self._dispatch(confirmed)
        return confirmed

    def _accepts(self, attempt_id: Optional[int]) -> bool:
        if not self.is_running:
            return False
        return attempt_id is None or attempt_id == self.attempt_id

    def _process_face(self, prediction: FacePrediction, now: float) -> List[ConfirmedSignal]:
        confirmed = []
        for key, present in self.classifier.classify_face(prediction).items():
            confirmed.extend(self._observe(key, present, now))
        return confirmed

    def _process_objects(self, predictions: Iterable, now: float) -> List[ConfirmedSignal]:
        now_ms = now * 1000.0
        self.debouncer.expire_stale(now_ms)
        confirmed = []
        for label, confidence in sorted(self.classifier.classify_objects(predictions).items()):
            confirmed.extend(
                self._observe(SignalKey.for_object(label), True, now, {'score': round(confidence, 2)})
            )
        return confirmed

    def _observe(
        self, key: SignalKey, present: bool, now: float, extra: Optional[Dict] = None
    ) -> List[ConfirmedSignal]:
        if not self.debouncer.observe(key, present, now * 1000.0):
            return []
        return [self._record(key, now, extra or {})]

    def _record(self, key: SignalKey, now: float, extra: Dict) -> ConfirmedSignal:
        event = ConfirmedSignal(
            timestamp=timestamp_from_seconds(self.clock()),
            kind=key.kind,
            label=key.label,
            extra=extra,
            offset_seconds=max(0.0, now - self._started_monotonic),
        )
        self.event_log.append(event)
        score = self.scorer.apply_delta(key.kind)
        self.status = STATUS_TEXTS.get(key.kind) or f"{key.label} detected"
        logger.info(f"{self.candidate_id}: {event.type_name} at +{event.offset_seconds:.1f}s (score {score})")
        return event

    def _dispatch(self, confirmed: List[ConfirmedSignal]) -> None:
        if not confirmed:
            return
        candidate_id = self.candidate_id
        for event in confirmed:
            if self.persistence is not None:
                try:
                    self.persistence.persist_event(event, candidate_id)
                except Exception as e:
                    logger.error(f"Failed to persist event {event.event_id}: {e}")
            self._notify(self.event_callbacks, event)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def add_event_callback(self, callback: Callable[[ConfirmedSignal], None]) -> None:
        self.event_callbacks.append(callback)

    def remove_event_callback(self, callback: Callable[[ConfirmedSignal], None]) -> None:
        if callback in self.event_callbacks:
            self.event_callbacks.remove(callback)

    def add_tick_callback(self, callback: Callable[[int], None]) -> None:
        self.tick_callbacks.append(callback)

    def remove_tick_callback(self, callback: Callable[[int], None]) -> None:
        if callback in self.tick_callbacks:
            self.tick_callbacks.remove(callback)

    def add_report_callback(self, callback: Callable[[Report], None]) -> None:
        self.report_callbacks.append(callback)

    def remove_report_callback(self, callback: Callable[[Report], None]) -> None:
        if callback in self.report_callbacks:
            self.report_callbacks.remove(callback)

    @staticmethod
    def _notify(callbacks: List[Callable], payload) -> None:
        for callback in list(callbacks):
            try:
                callback(payload)
            except Exception as e:
                logger.error(f"Error in session callback: {e}")

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def _snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            candidate_id=self.candidate_id or "",
            phase=self.phase,
            started_at=timestamp_from_seconds(self.started_at if self.started_at is not None else self.clock()),
            ended_at=timestamp_from_seconds(self.ended_at) if self.ended_at is not None else None,
            elapsed_seconds=self.elapsed_seconds,
            integrity_score=self.scorer.score,
            focus_lost_count=self.scorer.focus_lost_count,
            suspicious_item_count=self.scorer.suspicious_item_count,
            drowsiness_count=self.scorer.drowsiness_count,
            events=self.event_log.chronological(),
            end_reason=self.end_reason,
        )

    def snapshot(self) -> SessionSnapshot:
        """Current state as an immutable snapshot."""
        with self.lock:
            return self._snapshot()

    def get_report(self) -> Report:
        """
        Return the report of the ended attempt.

        Raises:
            SessionStateError: If the session has not ended
        """
        with self.lock:
            if self.phase is not SessionPhase.ENDED or self.report is None:
                raise SessionStateError(f"No report while session is {self.phase.value}")
            return self.report

    @property
    def integrity_score(self) -> int:
        return self.scorer.score

    @property
    def focus_lost_count(self) -> int:
        return self.scorer.focus_lost_count

    @property
    def suspicious_item_count(self) -> int:
        return self.scorer.suspicious_item_count

    @property
    def drowsiness_count(self) -> int:
        return self.scorer.drowsiness_count

    @property
    def elapsed_display(self) -> str:
        return format_elapsed(self.elapsed_seconds)

    def recent_events(self, limit: Optional[int] = None) -> List[ConfirmedSignal]:
        return self.event_log.reverse_chronological(limit)

    def get_status(self) -> Dict[str, object]:
        """Live status summary for a display."""
        with self.lock:
            return {
                'phase': self.phase.value,
                'candidate_id': self.candidate_id,
                'attempt_id': self.attempt_id,
                'status': self.status,
                'elapsed': format_elapsed(self.elapsed_seconds),
                'events': len(self.event_log),
                **self.scorer.to_dict(),
            }
