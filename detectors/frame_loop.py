"""
Frame Loop - Camera capture feeding detector adapters and a proctoring session.

This module owns the webcam, hands each captured frame to the recorder and
to one worker thread per detector adapter, and forwards the adapters'
predictions to the session tagged with the attempt they belong to.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import cv2
import numpy as np

from integrity_engine.exceptions import ResourceUnavailableError
from integrity_engine.interfaces import DetectionSource, RecordingAdapter
from integrity_engine.models import ConfirmedSignal, DetectorFrame, FacePrediction
from .base import SerializedDetector


logger = logging.getLogger(__name__)


class _AdapterWorker:
    """Runs one adapter on the most recent frame it was offered."""

    def __init__(self, name: str, detector: SerializedDetector, deliver: Callable[[Any], None]):
        self.name = name
        self.detector = detector
        self.deliver = deliver
        self.lock = threading.Lock()
        self.frame_ready = threading.Event()
        self.frame: Optional[np.ndarray] = None
        self.busy = False
        self.skipped_frames = 0
        self.thread: Optional[threading.Thread] = None

    def offer(self, frame: np.ndarray) -> bool:
        """Hand over a frame unless the worker already has one to process."""
        with self.lock:
            if self.busy or self.frame_ready.is_set():
                self.skipped_frames += 1
                return False
            self.frame = frame
            self.frame_ready.set()
            return True

    def run(self, is_running: Callable[[], bool]) -> None:
        while is_running():
            if not self.frame_ready.wait(0.1):
                continue
            with self.lock:
                frame, self.frame = self.frame, None
                self.frame_ready.clear()
                self.busy = True
            try:
                result = self.detector.infer(frame)
                if result is not None and is_running():
                    self.deliver(result)
            except Exception as e:
                logger.error(f"Error delivering {self.name} result: {e}")
            finally:
                with self.lock:
                    self.busy = False


class FrameLoop(DetectionSource):
    """
    Detection source that drives the camera and the detector adapters.

    Attach it to a session as a source: the session starts it after advancing
    the attempt id, and every prediction is forwarded with that id so results
    from an earlier attempt are ignored.
    """

    def __init__(
        self,
        session,
        face_detector: Optional[SerializedDetector] = None,
        object_detector: Optional[SerializedDetector] = None,
        recorder: Optional[RecordingAdapter] = None,
        camera_index: int = 0,
        target_fps: float = 30.0,
        use_camera: bool = True
    ):
        self.session = session
        self.face_detector = face_detector
        self.object_detector = object_detector
        self.recorder = recorder
        self.camera_index = camera_index
        self.target_fps = target_fps
        self.use_camera = use_camera

        self.is_running = False
        self.attempt_id: Optional[int] = None
        self.video_capture: Optional[cv2.VideoCapture] = None
        self.capture_thread: Optional[threading.Thread] = None
        self.workers: List[_AdapterWorker] = []

        self.current_frame: Optional[np.ndarray] = None
        self.frame_lock = threading.Lock()

        # Performance monitoring
        self.frame_count = 0
        self.last_fps_time = time.time()
        self.current_fps = 0.0

    def get_source_name(self) -> str:
        return "frame_loop"

    def _detectors(self) -> List[SerializedDetector]:
        return [d for d in (self.face_detector, self.object_detector) if d is not None]

    def is_available(self) -> bool:
        """Available when at least one adapter can run and all configured ones are installed."""
        detectors = self._detectors()
        return bool(detectors) and all(d.is_available() for d in detectors)

    def start_detection(self) -> None:
        """
        Start the adapters and, unless frames are pushed in, the capture loop.

        Raises:
            ResourceUnavailableError: If an adapter or the camera cannot start
        """
        if self.is_running:
            return

        self.attempt_id = self.session.attempt_id
        started = []
        try:
            for detector in self._detectors():
                detector.start_detection()
                started.append(detector)

            if self.use_camera:
                self.video_capture = cv2.VideoCapture(self.camera_index)
                if not self.video_capture.isOpened():
                    raise ResourceUnavailableError(f"Cannot open camera {self.camera_index}")
        except Exception:
            for detector in started:
                detector.stop_detection()
            self._release_camera()
            raise

        self.is_running = True
        self.frame_count = 0
        self.last_fps_time = time.time()

        if self.use_camera:
            self._start_workers()
            self.capture_thread = threading.Thread(
                target=self._capture_loop, name="frame-capture", daemon=True
            )
            self.capture_thread.start()

        logger.info(f"FrameLoop started for attempt {self.attempt_id}")

    def stop_detection(self) -> None:
        """Stop capture, join the worker threads and release the adapters."""
        self.is_running = False

        threads = [self.capture_thread] + [w.thread for w in self.workers]
        for thread in threads:
            if thread and thread.is_alive() and thread is not threading.current_thread():
                thread.join(timeout=2)
        self.capture_thread = None
        self.workers = []

        for detector in self._detectors():
            try:
                detector.stop_detection()
            except Exception as e:
                logger.error(f"Error stopping {detector.get_source_name()}: {e}")

        self._release_camera()
        with self.frame_lock:
            self.current_frame = None

        logger.info("FrameLoop stopped")

    def _release_camera(self) -> None:
        if self.video_capture is not None:
            self.video_capture.release()
            self.video_capture = None

    def _start_workers(self) -> None:
        attempt = self.attempt_id
        self.workers = []
        if self.face_detector is not None:
            self.workers.append(_AdapterWorker(
                'face', self.face_detector,
                lambda prediction: self.session.on_face_prediction(prediction, attempt_id=attempt)
            ))
        if self.object_detector is not None:
            self.workers.append(_AdapterWorker(
                'objects', self.object_detector,
                lambda predictions: self.session.on_object_predictions(predictions, attempt_id=attempt)
            ))
        for worker in self.workers:
            worker.thread = threading.Thread(
                target=worker.run, args=(lambda: self.is_running,),
                name=f"detector-{worker.name}", daemon=True
            )
            worker.thread.start()

    def _capture_loop(self) -> None:
        """Main video capture loop."""
        frame_interval = 1.0 / self.target_fps if self.target_fps > 0 else 0.0

        while self.is_running and self.video_capture is not None:
            try:
                ret, frame = self.video_capture.read()
                if not ret:
                    logger.debug("Failed to read frame from camera")
                    time.sleep(0.1)
                    continue

                with self.frame_lock:
                    self.current_frame = frame

                self._update_fps_counter()

                if self.recorder is not None:
                    self.recorder.write_frame(frame)

                for worker in self.workers:
                    worker.offer(frame)

                time.sleep(frame_interval)

            except Exception as e:
                if self.is_running:
                    logger.error(f"Error in capture loop: {e}")
                time.sleep(0.1)

        logger.debug("Capture loop stopped")

    def process_frame(self, frame: np.ndarray) -> List[ConfirmedSignal]:
        """
        Run the adapters on one frame in the calling thread and feed the session.

        Used when frames arrive from elsewhere, for example a browser stream.
        Adapters that are busy or fail simply contribute nothing for this frame.
        """
        if not self.is_running:
            return []

        if self.recorder is not None:
            self.recorder.write_frame(frame)

        face = self.face_detector.infer(frame) if self.face_detector is not None else None
        objects = self.object_detector.infer(frame) if self.object_detector is not None else None

        if isinstance(face, FacePrediction) and objects is not None:
            return self.session.on_frame(DetectorFrame.from_parts(face, objects), attempt_id=self.attempt_id)
        if isinstance(face, FacePrediction):
            return self.session.on_face_prediction(face, attempt_id=self.attempt_id)
        if objects is not None:
            return self.session.on_object_predictions(objects, attempt_id=self.attempt_id)
        return []

    def get_current_frame(self) -> Optional[np.ndarray]:
        with self.frame_lock:
            return None if self.current_frame is None else self.current_frame.copy()

    def _update_fps_counter(self) -> None:
        self.frame_count += 1
        now = time.time()
        if now - self.last_fps_time >= 1.0:
            self.current_fps = self.frame_count / (now - self.last_fps_time)
            self.frame_count = 0
            self.last_fps_time = now

    def get_health_status(self) -> Dict[str, Any]:
        """Return health status information for monitoring."""
        return {
            'source_name': self.get_source_name(),
            'is_running': self.is_running,
            'is_available': self.is_available(),
            'attempt_id': self.attempt_id,
            'camera_open': self.video_capture is not None,
            'fps': round(self.current_fps, 1),
            'skipped_frames': {w.name: w.skipped_frames for w in self.workers},
            'detectors': {d.get_source_name(): d.get_health_status() for d in self._detectors()},
        }
