"""
Tests for data models and shared utilities
"""
from datetime import datetime

import pytest

from integrity_engine.models import (
    ConfirmedSignal, DetectorFrame, FacePrediction, ObjectPrediction,
    SignalCategory, SignalFamily, SignalKey, SignalKind
)
from shared_utils.detection_utils import normalize_confidence, normalize_label
from shared_utils.validation import sanitize_filename, validate_candidate_id


class TestSignalKinds:
    """Families and categories"""

    def test_delayed_kinds(self):
        delayed = {kind for kind in SignalKind if kind.is_delayed}

        assert delayed == {SignalKind.NO_FACE, SignalKind.LOOKING_AWAY, SignalKind.DROWSINESS}
        assert SignalKind.TAB_CHANGE.family is SignalFamily.COOLDOWN

    def test_categories(self):
        assert SignalKind.WINDOW_BLUR.category is SignalCategory.ATTENTION_LOSS
        assert SignalKind.PROHIBITED_OBJECT.category is SignalCategory.SUSPICIOUS_ITEM
        assert SignalKind.DROWSINESS.category is SignalCategory.DROWSINESS

    def test_object_key_normalises_label(self):
        assert SignalKey.for_object(" Book ") == SignalKey(SignalKind.PROHIBITED_OBJECT, "book")
        assert str(SignalKey.for_object("book")) == "prohibited_object(book)"


class TestConfirmedSignal:
    """Event records"""

    def test_extra_is_copied(self):
        extra = {'score': 0.5}
        event = ConfirmedSignal(timestamp=datetime(2024, 1, 1), kind=SignalKind.PROHIBITED_OBJECT,
                                label="book", extra=extra)
        extra['score'] = 0.9

        assert event.extra == {'score': 0.5}

    def test_to_dict(self):
        event = ConfirmedSignal(timestamp=datetime(2024, 1, 1, 12, 0, 0), kind=SignalKind.NO_FACE,
                                offset_seconds=10.0004)

        data = event.to_dict()

        assert data['type'] == "no_face"
        assert data['label'] is None
        assert data['timestamp'] == "2024-01-01T12:00:00"
        assert data['offset_seconds'] == 10.0
        assert event.key == SignalKey.for_kind(SignalKind.NO_FACE)

    def test_event_ids_are_unique(self):
        events = [ConfirmedSignal(timestamp=datetime(2024, 1, 1), kind=SignalKind.TAB_CHANGE) for _ in range(3)]

        assert len({e.event_id for e in events}) == 3


class TestDetectorFrame:
    """Per-frame detector output"""

    def test_round_trip_face_part(self):
        face = FacePrediction(face_count=1, landmarks=((0.5, 0.5),))
        frame = DetectorFrame.from_parts(face, [ObjectPrediction("book", 0.7)])

        assert frame.face_part() == face
        assert frame.object_predictions == (ObjectPrediction("book", 0.7),)

    def test_negative_face_count_rejected(self):
        with pytest.raises(ValueError):
            FacePrediction(face_count=-1)


class TestSharedUtils:
    """Normalisation and validation helpers"""

    def test_normalize_confidence(self):
        assert normalize_confidence(1.7) == 1.0
        assert normalize_confidence(-0.2) == 0.0
        assert normalize_confidence("bad") == 0.0

    def test_normalize_label(self):
        assert normalize_label("  Cell   PHONE ") == "cell phone"
        assert normalize_label(None) == ""

    def test_validate_candidate_id(self):
        assert validate_candidate_id("  alice-01 ") == "alice-01"
        assert validate_candidate_id("   ") is None
        assert validate_candidate_id(None) is None

    def test_sanitize_filename(self):
        assert sanitize_filename("a/b:c") == "a_b_c"
        assert sanitize_filename("..") == "__"
        assert "/" not in sanitize_filename("../escape")
