"""
Validation utilities for the exam integrity monitor.

This module provides validation functions for candidate identifiers,
monitor configuration dictionaries and file names used throughout the
system.
"""

from typing import Dict, Any, List, Optional, Tuple
import re


VALID_OBJECT_REPEAT_POLICIES = ('cooldown', 'require_absence')


def validate_detection_threshold(threshold: float) -> bool:
    """
    Validate detection threshold value.

    Args:
        threshold: Threshold value to validate

    Returns:
        True if valid, False otherwise
    """
    return (
        isinstance(threshold, (int, float))
        and not isinstance(threshold, bool)
        and 0.0 <= threshold <= 1.0
    )


def validate_duration_ms(value: Any, allow_zero: bool = True) -> bool:
    """Check that a millisecond duration is a non-negative integer."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value >= 0 if allow_zero else value > 0


def validate_candidate_id(candidate_id: Optional[str]) -> Optional[str]:
    """
    Validate and normalise a candidate identifier.

    Args:
        candidate_id: Identifier typed by the proctor or the candidate

    Returns:
        The trimmed identifier, or None when it is missing or blank
    """
    if not isinstance(candidate_id, str):
        return None
    trimmed = candidate_id.strip()
    return trimmed or None


def validate_monitor_configuration(config_dict: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate monitor configuration data.

    Args:
        config_dict: Configuration data dictionary in the JSON file layout

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if 'session_duration_ms' in config_dict:
        if not validate_duration_ms(config_dict['session_duration_ms'], allow_zero=False):
            errors.append(f"Invalid session_duration_ms: {config_dict['session_duration_ms']}")

    if 'tick_interval_ms' in config_dict:
        if not validate_duration_ms(config_dict['tick_interval_ms'], allow_zero=False):
            errors.append(f"Invalid tick_interval_ms: {config_dict['tick_interval_ms']}")

    if 'object_presence_timeout_ms' in config_dict:
        if not validate_duration_ms(config_dict['object_presence_timeout_ms']):
            errors.append(
                f"Invalid object_presence_timeout_ms: {config_dict['object_presence_timeout_ms']}"
            )

    for section in ('confirm_delay_ms', 'cooldown_ms'):
        values = config_dict.get(section, {})
        if not isinstance(values, dict):
            errors.append(f"{section} must be a mapping of signal kind to milliseconds")
            continue
        for kind, value in values.items():
            if not validate_duration_ms(value):
                errors.append(f"Invalid {section} for {kind}: {value}")

    if 'object_confidence_threshold' in config_dict:
        threshold = config_dict['object_confidence_threshold']
        if not validate_detection_threshold(threshold):
            errors.append(f"Invalid object_confidence_threshold: {threshold}")

    if 'drowsiness_eye_threshold' in config_dict:
        threshold = config_dict['drowsiness_eye_threshold']
        if not validate_detection_threshold(threshold):
            errors.append(f"Invalid drowsiness_eye_threshold: {threshold}")

    if 'gaze_band' in config_dict:
        band = config_dict['gaze_band']
        if (
            not isinstance(band, (list, tuple))
            or len(band) != 2
            or not all(validate_detection_threshold(edge) for edge in band)
            or band[0] >= band[1]
        ):
            errors.append(f"Invalid gaze_band: {band}")

    if 'prohibited_labels' in config_dict:
        labels = config_dict['prohibited_labels']
        if not isinstance(labels, (list, tuple)) or not all(
            isinstance(label, str) and label.strip() for label in labels
        ):
            errors.append(f"Invalid prohibited_labels: {labels}")

    indices = config_dict.get('landmark_indices', {})
    if not isinstance(indices, dict):
        errors.append("landmark_indices must be a mapping")
    else:
        for name, index in indices.items():
            if isinstance(index, bool) or not isinstance(index, int) or index < 0:
                errors.append(f"Invalid landmark index for {name}: {index}")

    if 'repeat_while_present' in config_dict:
        if not isinstance(config_dict['repeat_while_present'], bool):
            errors.append(f"Invalid repeat_while_present: {config_dict['repeat_while_present']!r}")

    policy = config_dict.get('object_repeat_policy')
    if policy is not None and policy not in VALID_OBJECT_REPEAT_POLICIES:
        errors.append(f"Invalid object_repeat_policy: {policy}")

    return len(errors) == 0, errors


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename for safe storage.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    # Remove or replace unsafe characters
    unsafe_chars = r'[<>:"/\\|?*\x00-\x1f]'
    sanitized = re.sub(unsafe_chars, '_', filename).strip()

    # Never let a name resolve to the current or parent directory
    if sanitized in ('', '.', '..'):
        sanitized = sanitized.replace('.', '_') or '_'

    # Limit length
    if len(sanitized) > 255:
        name, ext = sanitized.rsplit('.', 1) if '.' in sanitized else (sanitized, '')
        max_name_len = 255 - len(ext) - 1 if ext else 255
        sanitized = name[:max_name_len] + ('.' + ext if ext else '')

    return sanitized
