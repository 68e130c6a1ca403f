"""
Detection components module for the exam integrity monitor.

This module contains the model adapters, the camera frame loop and the
video recorder that feed a proctoring session.
"""

from .base import SerializedDetector
from .face_landmarks import FaceLandmarkAdapter
from .object_detector import ObjectDetectorAdapter
from .frame_loop import FrameLoop
from .recorder import VideoRecorder

__all__ = [
    'SerializedDetector',
    'FaceLandmarkAdapter',
    'ObjectDetectorAdapter',
    'FrameLoop',
    'VideoRecorder'
]
