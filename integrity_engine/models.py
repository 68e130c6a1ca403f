"""
Integrity Engine Models - Data models for signals, detector frames, events and reports.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, Tuple


Point2D = Tuple[float, float]


class SignalFamily(Enum):
    """How a signal kind is turned from raw observations into confirmations."""
    DELAYED = "delayed"
    COOLDOWN = "cooldown"


class SignalCategory(Enum):
    """Scoring category a confirmed signal is counted under."""
    ATTENTION_LOSS = "attention_loss"
    SUSPICIOUS_ITEM = "suspicious_item"
    DROWSINESS = "drowsiness"


class SignalKind(Enum):
    """Enumeration of integrity-risk signal kinds."""
    NO_FACE = "no_face"
    MULTIPLE_FACES = "multiple_faces"
    LOOKING_AWAY = "looking_away"
    DROWSINESS = "drowsiness"
    PROHIBITED_OBJECT = "prohibited_object"
    TAB_CHANGE = "tab_change"
    WINDOW_BLUR = "window_blur"

    @property
    def family(self) -> SignalFamily:
        return _KIND_FAMILIES[self]

    @property
    def category(self) -> SignalCategory:
        return _KIND_CATEGORIES[self]

    @property
    def is_delayed(self) -> bool:
        return self.family is SignalFamily.DELAYED


_KIND_FAMILIES = {
    SignalKind.NO_FACE: SignalFamily.DELAYED,
    SignalKind.LOOKING_AWAY: SignalFamily.DELAYED,
    SignalKind.DROWSINESS: SignalFamily.DELAYED,
    SignalKind.MULTIPLE_FACES: SignalFamily.COOLDOWN,
    SignalKind.PROHIBITED_OBJECT: SignalFamily.COOLDOWN,
    SignalKind.TAB_CHANGE: SignalFamily.COOLDOWN,
    SignalKind.WINDOW_BLUR: SignalFamily.COOLDOWN,
}

_KIND_CATEGORIES = {
    SignalKind.NO_FACE: SignalCategory.ATTENTION_LOSS,
    SignalKind.MULTIPLE_FACES: SignalCategory.ATTENTION_LOSS,
    SignalKind.LOOKING_AWAY: SignalCategory.ATTENTION_LOSS,
    SignalKind.TAB_CHANGE: SignalCategory.ATTENTION_LOSS,
    SignalKind.WINDOW_BLUR: SignalCategory.ATTENTION_LOSS,
    SignalKind.PROHIBITED_OBJECT: SignalCategory.SUSPICIOUS_ITEM,
    SignalKind.DROWSINESS: SignalCategory.DROWSINESS,
}


class ObjectRepeatPolicy(Enum):
    """When a prohibited object that stays in view may be confirmed again."""
    COOLDOWN = "cooldown"
    REQUIRE_ABSENCE = "require_absence"


class SessionPhase(Enum):
    """Lifecycle phase of a proctoring session."""
    IDLE = "idle"
    RUNNING = "running"
    ENDED = "ended"


class EndReason(Enum):
    """Why a session left the running phase."""
    MANUAL = "manual"
    DEADLINE = "deadline"


# Default timing and threshold values
DEFAULT_SESSION_DURATION_MS = 90_000
DEFAULT_TICK_INTERVAL_MS = 1_000
DEFAULT_CONFIRM_DELAYS_MS = {
    SignalKind.NO_FACE: 10_000,
    SignalKind.LOOKING_AWAY: 5_000,
    SignalKind.DROWSINESS: 3_000,
}
DEFAULT_COOLDOWN_MS = 5_000
DEFAULT_COOLDOWNS_MS = {
    SignalKind.MULTIPLE_FACES: DEFAULT_COOLDOWN_MS,
    SignalKind.PROHIBITED_OBJECT: DEFAULT_COOLDOWN_MS,
    SignalKind.TAB_CHANGE: DEFAULT_COOLDOWN_MS,
    SignalKind.WINDOW_BLUR: DEFAULT_COOLDOWN_MS,
}
DEFAULT_OBJECT_CONFIDENCE = 0.5
DEFAULT_OBJECT_PRESENCE_TIMEOUT_MS = 2_000
DEFAULT_PROHIBITED_LABELS = ("cell phone", "book", "laptop")
DEFAULT_GAZE_BAND = (0.3, 0.7)
DEFAULT_DROWSINESS_EYE_THRESHOLD = 0.008

# Face Mesh landmark indices
NOSE_TIP_INDEX = 1
LEFT_EYE_INDEX = 33
RIGHT_EYE_INDEX = 263


@dataclass(frozen=True)
class SignalKey:
    """
    Identifies one independently debounced signal.

    Prohibited objects are keyed per label so that a phone and a book keep
    separate cooldowns; every other kind has exactly one key.
    """
    kind: SignalKind
    label: Optional[str] = None

    def __post_init__(self):
        if self.kind is SignalKind.PROHIBITED_OBJECT and not self.label:
            raise ValueError("prohibited_object signals require a label")
        if self.kind is not SignalKind.PROHIBITED_OBJECT and self.label is not None:
            raise ValueError(f"{self.kind.value} signals do not take a label")

    @classmethod
    def for_kind(cls, kind: SignalKind) -> "SignalKey":
        return cls(kind)

    @classmethod
    def for_object(cls, label: str) -> "SignalKey":
        return cls(SignalKind.PROHIBITED_OBJECT, label.strip().lower())

    def __str__(self) -> str:
        if self.label is not None:
            return f"{self.kind.value}({self.label})"
        return self.kind.value


@dataclass
class SignalState:
    """Mutable debounce state for a single signal key."""
    pending: bool = False
    pending_since: Optional[float] = None
    last_confirmed: Optional[float] = None
    detected: bool = False
    last_seen: Optional[float] = None
    latched: bool = False


@dataclass(frozen=True)
class FacePrediction:
    """Face-landmark detector output for one frame."""
    face_count: int
    landmarks: Optional[Tuple[Point2D, ...]] = None

    def __post_init__(self):
        if self.face_count < 0:
            raise ValueError(f"face_count must be non-negative, got {self.face_count}")


@dataclass(frozen=True)
class ObjectPrediction:
    """A single object-detector prediction."""
    label: str
    confidence: float


@dataclass(frozen=True)
class DetectorFrame:
    """Combined detector output for one processed frame."""
    face_count: int
    primary_face_landmarks: Optional[Tuple[Point2D, ...]] = None
    object_predictions: Tuple[ObjectPrediction, ...] = ()

    @classmethod
    def from_parts(cls, face: FacePrediction, objects=()) -> "DetectorFrame":
        return cls(
            face_count=face.face_count,
            primary_face_landmarks=face.landmarks,
            object_predictions=tuple(objects),
        )

    def face_part(self) -> FacePrediction:
        return FacePrediction(self.face_count, self.primary_face_landmarks)


@dataclass(frozen=True)
class ConfirmedSignal:
    """
    A debounced, deduplicated detection worth recording and scoring.

    Created once by the session and never modified afterwards.
    """
    timestamp: datetime
    kind: SignalKind
    label: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, hash=False)
    offset_seconds: float = 0.0
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        object.__setattr__(self, "extra", dict(self.extra))

    @property
    def key(self) -> SignalKey:
        return SignalKey(self.kind, self.label)

    @property
    def type_name(self) -> str:
        """Event type as shown to reviewers: the object label, else the kind."""
        return self.label if self.label is not None else self.kind.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            'event_id': self.event_id,
            'timestamp': self.timestamp.isoformat(),
            'offset_seconds': round(self.offset_seconds, 3),
            'type': self.type_name,
            'kind': self.kind.value,
            'label': self.label,
            'extra': dict(self.extra),
        }

    def __str__(self) -> str:
        return f"ConfirmedSignal({self.type_name}, t+{self.offset_seconds:.1f}s)"


@dataclass(frozen=True)
class SessionSnapshot:
    """Frozen copy of session state taken when the session ends."""
    candidate_id: str
    phase: SessionPhase
    started_at: datetime
    ended_at: Optional[datetime]
    elapsed_seconds: int
    integrity_score: int
    focus_lost_count: int
    suspicious_item_count: int
    drowsiness_count: int
    events: Tuple[ConfirmedSignal, ...]
    end_reason: Optional[EndReason] = None


@dataclass(frozen=True)
class Report:
    """Final summary of one exam attempt."""
    candidate_id: str
    duration_seconds: int
    duration: str
    focus_lost_count: int
    suspicious_item_count: int
    drowsiness_count: int
    final_score: int
    events: Tuple[ConfirmedSignal, ...]
    started_at: datetime
    ended_at: Optional[datetime] = None
    end_reason: Optional[EndReason] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            'candidate_id': self.candidate_id,
            'duration': self.duration,
            'duration_seconds': self.duration_seconds,
            'focus_lost_count': self.focus_lost_count,
            'suspicious_events': self.suspicious_item_count,
            'drowsiness_count': self.drowsiness_count,
            'final_integrity_score': self.final_score,
            'started_at': self.started_at.isoformat(),
            'ended_at': self.ended_at.isoformat() if self.ended_at else None,
            'end_reason': self.end_reason.value if self.end_reason else None,
            'events': [event.to_dict() for event in self.events],
        }


@dataclass
class MonitorConfiguration:
    """
    Tunable parameters of the monitoring core.

    Delays and cooldowns are keyed by signal kind; kinds missing from the
    mappings fall back to the module defaults.
    """
    session_duration_ms: int = DEFAULT_SESSION_DURATION_MS
    tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS
    confirm_delay_ms: Dict[SignalKind, int] = field(
        default_factory=lambda: dict(DEFAULT_CONFIRM_DELAYS_MS)
    )
    cooldown_ms: Dict[SignalKind, int] = field(
        default_factory=lambda: dict(DEFAULT_COOLDOWNS_MS)
    )
    object_confidence_threshold: float = DEFAULT_OBJECT_CONFIDENCE
    object_presence_timeout_ms: int = DEFAULT_OBJECT_PRESENCE_TIMEOUT_MS
    prohibited_labels: Tuple[str, ...] = DEFAULT_PROHIBITED_LABELS
    gaze_band: Tuple[float, float] = DEFAULT_GAZE_BAND
    drowsiness_eye_threshold: float = DEFAULT_DROWSINESS_EYE_THRESHOLD
    nose_tip_index: int = NOSE_TIP_INDEX
    left_eye_index: int = LEFT_EYE_INDEX
    right_eye_index: int = RIGHT_EYE_INDEX
    repeat_while_present: bool = True
    object_repeat_policy: ObjectRepeatPolicy = ObjectRepeatPolicy.COOLDOWN

    def get_confirm_delay(self, kind: SignalKind) -> int:
        """Confirmation delay in milliseconds for a delayed-confirmation kind."""
        if not kind.is_delayed:
            raise ValueError(f"{kind.value} is not a delayed-confirmation signal")
        return int(self.confirm_delay_ms.get(kind, DEFAULT_CONFIRM_DELAYS_MS[kind]))

    def get_cooldown(self, kind: SignalKind) -> int:
        """Cooldown in milliseconds for a cooldown-gated kind."""
        if kind.is_delayed:
            raise ValueError(f"{kind.value} is not a cooldown-gated signal")
        return int(self.cooldown_ms.get(kind, DEFAULT_COOLDOWN_MS))

    @property
    def session_duration_seconds(self) -> float:
        return self.session_duration_ms / 1000.0

    @property
    def tick_interval_seconds(self) -> float:
        return self.tick_interval_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON layout read by the configuration service."""
        return {
            'session_duration_ms': self.session_duration_ms,
            'tick_interval_ms': self.tick_interval_ms,
            'confirm_delay_ms': {kind.value: value for kind, value in self.confirm_delay_ms.items()},
            'cooldown_ms': {kind.value: value for kind, value in self.cooldown_ms.items()},
            'object_confidence_threshold': self.object_confidence_threshold,
            'object_presence_timeout_ms': self.object_presence_timeout_ms,
            'prohibited_labels': list(self.prohibited_labels),
            'gaze_band': list(self.gaze_band),
            'drowsiness_eye_threshold': self.drowsiness_eye_threshold,
            'landmark_indices': {
                'nose_tip': self.nose_tip_index,
                'left_eye': self.left_eye_index,
                'right_eye': self.right_eye_index,
            },
            'repeat_while_present': self.repeat_while_present,
            'object_repeat_policy': self.object_repeat_policy.value,
        }
