"""
Face Landmark Adapter - MediaPipe Face Mesh wrapped as a face-count and landmark source.
"""

import logging
from typing import Any, Dict, Optional

import cv2
import numpy as np

try:
    import mediapipe as mp
    MEDIAPIPE_AVAILABLE = True
except ImportError:
    MEDIAPIPE_AVAILABLE = False

from integrity_engine.models import FacePrediction
from .base import SerializedDetector


logger = logging.getLogger(__name__)


class FaceLandmarkAdapter(SerializedDetector):
    """
    Reports how many faces are visible and the landmarks of the first one.

    Two faces are tracked at most, which is enough to tell one face from
    several. Landmarks are normalised (x, y) pairs in Face Mesh order.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.max_num_faces = self.config.get('max_num_faces', 2)
        self.refine_landmarks = self.config.get('refine_landmarks', True)
        self.min_detection_confidence = self.config.get('min_detection_confidence', 0.5)
        self.min_tracking_confidence = self.config.get('min_tracking_confidence', 0.5)
        self.face_mesh = None

        if not MEDIAPIPE_AVAILABLE:
            logger.warning("MediaPipe not available - install the 'detectors' extra")

    def get_source_name(self) -> str:
        return "face_landmarks"

    def is_available(self) -> bool:
        """Check if MediaPipe face mesh is available."""
        return MEDIAPIPE_AVAILABLE

    def _load(self) -> None:
        self.face_mesh = mp.solutions.face_mesh.FaceMesh(
            static_image_mode=False,
            max_num_faces=self.max_num_faces,
            refine_landmarks=self.refine_landmarks,
            min_detection_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_tracking_confidence
        )

    def _release(self) -> None:
        if self.face_mesh is not None:
            self.face_mesh.close()
            self.face_mesh = None

    def _predict(self, frame: np.ndarray) -> FacePrediction:
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self.face_mesh.process(rgb_frame)
        faces = results.multi_face_landmarks or []

        if not faces:
            return FacePrediction(face_count=0)

        landmarks = tuple((point.x, point.y) for point in faces[0].landmark)
        return FacePrediction(face_count=len(faces), landmarks=landmarks)
