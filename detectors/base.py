"""
Serialized Detector - Base class for model adapters with a single in-flight inference.
"""

import logging
import threading
from abc import abstractmethod
from typing import Any, Dict, Optional

from integrity_engine.exceptions import DetectorUnavailableError
from integrity_engine.interfaces import DetectionSource


logger = logging.getLogger(__name__)


class SerializedDetector(DetectionSource):
    """
    Wraps a detection model so that at most one inference runs at a time.

    A frame offered while an inference is in progress is skipped and
    counted rather than queued, so results are always delivered in frame
    order. Model errors are logged and counted, and the frame yields None.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.is_running = False
        self.inference_lock = threading.Lock()

        # Detection statistics
        self.total_inferences = 0
        self.skipped_frames = 0
        self.failed_inferences = 0

    @abstractmethod
    def _load(self) -> None:
        """Load the underlying model."""
        pass

    @abstractmethod
    def _release(self) -> None:
        """Release the underlying model."""
        pass

    @abstractmethod
    def _predict(self, frame):
        """Run the model on one BGR frame and convert its output."""
        pass

    def start_detection(self) -> None:
        """
        Load the model and start accepting frames.

        Raises:
            DetectorUnavailableError: If the backend is missing or fails to load
        """
        if self.is_running:
            return
        if not self.is_available():
            raise DetectorUnavailableError(f"{self.get_source_name()} backend is not installed")
        try:
            self._load()
        except Exception as e:
            raise DetectorUnavailableError(f"Failed to load {self.get_source_name()}: {e}") from e

        self.total_inferences = 0
        self.skipped_frames = 0
        self.failed_inferences = 0
        self.is_running = True
        logger.info(f"{self.get_source_name()} started")

    def stop_detection(self) -> None:
        """Stop accepting frames and release the model."""
        self.is_running = False
        try:
            self._release()
        except Exception as e:
            logger.warning(f"Error releasing {self.get_source_name()}: {e}")
        logger.info(f"{self.get_source_name()} stopped")

    def infer(self, frame):
        """
        Run one inference unless another is already in flight.

        Returns:
            The adapter's prediction, or None when not running, busy or failed
        """
        if not self.is_running:
            return None

        if not self.inference_lock.acquire(blocking=False):
            self.skipped_frames += 1
            logger.debug(f"{self.get_source_name()} busy, frame skipped")
            return None

        try:
            result = self._predict(frame)
            self.total_inferences += 1
            return result
        except Exception as e:
            self.failed_inferences += 1
            logger.warning(f"{self.get_source_name()} inference failed: {e}")
            return None
        finally:
            self.inference_lock.release()

    @property
    def busy(self) -> bool:
        return self.inference_lock.locked()

    def get_detection_statistics(self) -> Dict[str, Any]:
        """Get detection statistics."""
        return {
            'total_inferences': self.total_inferences,
            'skipped_frames': self.skipped_frames,
            'failed_inferences': self.failed_inferences,
        }

    def get_health_status(self) -> Dict[str, Any]:
        """Return health status information for monitoring."""
        return {
            'source_name': self.get_source_name(),
            'is_running': self.is_running,
            'is_available': self.is_available(),
            'busy': self.busy,
            'statistics': self.get_detection_statistics(),
            'config': self.config,
        }

    def update_config(self, config: Dict[str, Any]) -> None:
        """Update configuration for this detector."""
        self.config.update(config)
