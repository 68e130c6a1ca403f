"""
Shared Utilities Package - Common utilities for the exam integrity monitor.
"""

from .detection_utils import normalize_confidence, normalize_label
from .common import setup_logging

__all__ = ['normalize_confidence', 'normalize_label', 'setup_logging']
