"""
Signal Classifier - Turns raw detector predictions into per-signal observations.
"""

import logging
from typing import Dict, Iterable, Optional, Sequence

from shared_utils.detection_utils import best_confidence_by_label, landmark_at
from .models import (
    FacePrediction, MonitorConfiguration, Point2D, SignalKey, SignalKind
)


logger = logging.getLogger(__name__)


class SignalClassifier:
    """
    Geometric and threshold rules that derive signal booleans from a frame.

    The classifier is stateless; all timing lives in the debouncer.
    """

    def __init__(self, config: Optional[MonitorConfiguration] = None):
        self.config = config or MonitorConfiguration()

    def is_looking_away(self, landmarks: Optional[Sequence[Point2D]]) -> bool:
        """
        Check whether the nose tip lies outside the central gaze band.

        Args:
            landmarks: Normalised (x, y) landmarks of the single visible face

        Returns:
            True when the head is turned away; False when the landmark is missing
        """
        nose = landmark_at(landmarks, self.config.nose_tip_index)
        if nose is None:
            return False
        low, high = self.config.gaze_band
        return nose[0] < low or nose[0] > high

    def is_drowsy(self, landmarks: Optional[Sequence[Point2D]]) -> bool:
        """
        Check the eye-corner height difference against the drowsiness threshold.

        Args:
            landmarks: Normalised (x, y) landmarks of the single visible face

        Returns:
            True when the eye heuristic fires; False when a landmark is missing
        """
        left = landmark_at(landmarks, self.config.left_eye_index)
        right = landmark_at(landmarks, self.config.right_eye_index)
        if left is None or right is None:
            return False
        return abs(left[1] - right[1]) < self.config.drowsiness_eye_threshold

    def classify_face(self, prediction: FacePrediction) -> Dict[SignalKey, bool]:
        """
        Derive the face-based observations for one frame.

        Looking away and drowsiness only hold while exactly one face is visible
        with landmarks; otherwise they are reported as absent.
        """
        single_face = prediction.face_count == 1 and bool(prediction.landmarks)
        landmarks = prediction.landmarks if single_face else None
        return {
            SignalKey.for_kind(SignalKind.NO_FACE): prediction.face_count == 0,
            SignalKey.for_kind(SignalKind.MULTIPLE_FACES): prediction.face_count > 1,
            SignalKey.for_kind(SignalKind.LOOKING_AWAY): single_face and self.is_looking_away(landmarks),
            SignalKey.for_kind(SignalKind.DROWSINESS): single_face and self.is_drowsy(landmarks),
        }

    def classify_objects(self, predictions: Iterable) -> Dict[str, float]:
        """
        Filter object predictions down to prohibited labels above threshold.

        Returns:
            Normalised label -> best confidence seen in this frame
        """
        hits = best_confidence_by_label(
            predictions,
            self.config.prohibited_labels,
            self.config.object_confidence_threshold,
        )
        if hits:
            logger.debug(f"Prohibited objects in frame: {hits}")
        return hits
