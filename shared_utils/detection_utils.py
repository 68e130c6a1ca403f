"""
Detection Utilities - Common functions for detection processing.
"""

from typing import Dict, Iterable, Optional, Sequence, Union


def normalize_confidence(confidence: Union[float, int]) -> float:
    """
    Normalize confidence score to [0, 1] range.

    Args:
        confidence: Raw confidence score

    Returns:
        Normalized confidence in [0, 1] range
    """
    try:
        conf_float = float(confidence)
        return max(0.0, min(1.0, conf_float))
    except (ValueError, TypeError):
        return 0.0


def normalize_label(label: Optional[str]) -> str:
    """Lower-case and trim a detector class name ("Cell Phone " -> "cell phone")."""
    return " ".join((label or "").strip().lower().split())


def best_confidence_by_label(
    predictions: Iterable,
    allowed_labels: Iterable[str],
    min_confidence: float = 0.5
) -> Dict[str, float]:
    """
    Keep the highest confidence per allowed label.

    Args:
        predictions: Objects with ``label`` and ``confidence`` attributes
        allowed_labels: Labels that count (compared after normalisation)
        min_confidence: Minimum confidence threshold (inclusive)

    Returns:
        Mapping of normalised label to its best confidence in this frame
    """
    allowed = {normalize_label(label) for label in allowed_labels}
    best: Dict[str, float] = {}
    for prediction in predictions:
        label = normalize_label(getattr(prediction, 'label', None))
        if label not in allowed:
            continue
        confidence = normalize_confidence(getattr(prediction, 'confidence', 0.0))
        if confidence < min_confidence:
            continue
        best[label] = max(best.get(label, 0.0), confidence)
    return best


def landmark_at(landmarks: Optional[Sequence], index: int):
    """Return the landmark at ``index`` or None when it is missing."""
    if not landmarks or index < 0 or index >= len(landmarks):
        return None
    return landmarks[index]
