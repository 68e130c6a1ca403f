"""
Video Recorder - Records the attempt's camera frames with OpenCV.
"""

import logging
import os
import tempfile
import threading
from typing import Optional

import cv2
import numpy as np

from integrity_engine.exceptions import ResourceUnavailableError
from integrity_engine.interfaces import RecordingAdapter


logger = logging.getLogger(__name__)


class VideoRecorder(RecordingAdapter):
    """
    Encodes frames to a temporary file and hands back the bytes on stop.

    The writer is opened on the first frame, once the frame size is known.
    """

    def __init__(self, fps: float = 30.0, codec: str = "mp4v", suffix: str = ".mp4"):
        self.fps = fps
        self.codec = codec
        self.suffix = suffix
        self.writer: Optional[cv2.VideoWriter] = None
        self.file_path: Optional[str] = None
        self.is_recording = False
        self.frames_written = 0
        self.lock = threading.Lock()

    def start(self) -> None:
        with self.lock:
            if self.is_recording:
                return
            try:
                handle, self.file_path = tempfile.mkstemp(suffix=self.suffix, prefix="attempt_")
                os.close(handle)
            except OSError as e:
                raise ResourceUnavailableError(f"Cannot create recording file: {e}") from e
            self.writer = None
            self.frames_written = 0
            self.is_recording = True
        logger.info(f"Recording to {self.file_path}")

    def write_frame(self, frame: np.ndarray) -> None:
        with self.lock:
            if not self.is_recording or frame is None:
                return

            if self.writer is None:
                height, width = frame.shape[:2]
                fourcc = cv2.VideoWriter_fourcc(*self.codec)
                self.writer = cv2.VideoWriter(self.file_path, fourcc, self.fps, (width, height))
                if not self.writer.isOpened():
                    logger.error(f"Could not open video writer for {self.file_path}")
                    self.writer = None
                    self.is_recording = False
                    return

            self.writer.write(frame)
            self.frames_written += 1

    def stop(self) -> bytes:
        with self.lock:
            self.is_recording = False
            if self.writer is not None:
                self.writer.release()
                self.writer = None

            file_path, self.file_path = self.file_path, None

        if file_path is None:
            return b""

        try:
            with open(file_path, 'rb') as f:
                data = f.read()
        finally:
            try:
                os.remove(file_path)
            except OSError as e:
                logger.warning(f"Could not remove {file_path}: {e}")

        logger.info(f"Recording finished: {self.frames_written} frames, {len(data)} bytes")
        return data
