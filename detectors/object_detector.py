"""
Object Detector Adapter - Ultralytics YOLO wrapped as a labelled object source.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import numpy as np

try:
    from ultralytics import YOLO
    YOLO_AVAILABLE = True
except ImportError:
    YOLO_AVAILABLE = False

from integrity_engine.models import ObjectPrediction
from shared_utils.detection_utils import normalize_confidence, normalize_label
from .base import SerializedDetector


logger = logging.getLogger(__name__)


class ObjectDetectorAdapter(SerializedDetector):
    """
    Runs a COCO-trained YOLO model and returns every prediction as
    (label, confidence). Filtering to prohibited labels happens downstream.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.model_path = self.config.get('model_path', 'yolov8n.pt')
        # Predictions below this never reach the session
        self.min_confidence = self.config.get('min_confidence', 0.25)
        self.model = None

        if not YOLO_AVAILABLE:
            logger.warning("YOLO not available - install the 'detectors' extra")

    def get_source_name(self) -> str:
        return "object_detector"

    def is_available(self) -> bool:
        """Check if the ultralytics package is installed."""
        return YOLO_AVAILABLE

    def _load(self) -> None:
        self.model = YOLO(self.model_path)
        logger.info(f"Loaded object model: {self.model_path}")

    def _release(self) -> None:
        self.model = None

    def _predict(self, frame: np.ndarray) -> Tuple[ObjectPrediction, ...]:
        results = self.model(frame, conf=self.min_confidence, verbose=False)

        predictions = []
        for result in results:
            if result.boxes is None:
                continue

            names = result.names
            for box in result.boxes:
                class_id = int(box.cls[0])
                confidence = normalize_confidence(box.conf[0].item())
                label = names.get(class_id, str(class_id)) if isinstance(names, dict) else names[class_id]
                predictions.append(ObjectPrediction(normalize_label(label), confidence))

        return tuple(predictions)
