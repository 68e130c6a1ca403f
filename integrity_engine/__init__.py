"""
Integrity Engine Package - Exam Integrity Monitor

This package contains the signal-debouncing and scoring core: it turns
per-frame detector output into confirmed events, keeps the integrity score
and drives the lifecycle of a monitored attempt.
"""

from .config import ConfigurationService
from .debouncer import SignalDebouncer
from .event_log import EventLog
from .exceptions import (
    ConfigurationError, DetectorUnavailableError, InvalidSessionStartError,
    ProctoringError, ResourceUnavailableError, SessionStateError
)
from .interfaces import DetectionSource, PersistenceSink, RecordingAdapter
from .models import (
    ConfirmedSignal, DetectorFrame, EndReason, FacePrediction, MonitorConfiguration,
    ObjectPrediction, ObjectRepeatPolicy, Report, SessionPhase, SessionSnapshot,
    SignalCategory, SignalKey, SignalKind
)
from .persistence import JsonlPersistenceSink, PersistenceDispatcher
from .report import build_report, events_to_csv, format_duration, format_elapsed, report_to_json
from .scheduling import Scheduler, ThreadingScheduler, TimerHandle
from .scoring import IntegrityScorer
from .session import ProctoringSession
from .signals import SignalClassifier

__all__ = [
    'ConfigurationService',
    'SignalDebouncer',
    'EventLog',
    'ConfigurationError',
    'DetectorUnavailableError',
    'InvalidSessionStartError',
    'ProctoringError',
    'ResourceUnavailableError',
    'SessionStateError',
    'DetectionSource',
    'PersistenceSink',
    'RecordingAdapter',
    'ConfirmedSignal',
    'DetectorFrame',
    'EndReason',
    'FacePrediction',
    'MonitorConfiguration',
    'ObjectPrediction',
    'ObjectRepeatPolicy',
    'Report',
    'SessionPhase',
    'SessionSnapshot',
    'SignalCategory',
    'SignalKey',
    'SignalKind',
    'JsonlPersistenceSink',
    'PersistenceDispatcher',
    'build_report',
    'events_to_csv',
    'format_duration',
    'format_elapsed',
    'report_to_json',
    'Scheduler',
    'ThreadingScheduler',
    'TimerHandle',
    'IntegrityScorer',
    'ProctoringSession',
    'SignalClassifier',
]
