"""
Integrity Scorer - Score deltas and category counters for confirmed signals.
"""

import logging
import threading
from typing import Dict, Any

from .models import SignalCategory, SignalKind


logger = logging.getLogger(__name__)

INITIAL_SCORE = 100
MIN_SCORE = 0

# Points deducted per confirmed signal, by category
CATEGORY_PENALTIES = {
    SignalCategory.ATTENTION_LOSS: 2,
    SignalCategory.SUSPICIOUS_ITEM: 5,
    SignalCategory.DROWSINESS: 3,
}


class IntegrityScorer:
    """Decaying integrity score plus one monotonic counter per category."""

    def __init__(self):
        self.lock = threading.Lock()
        self.score = INITIAL_SCORE
        self.counters: Dict[SignalCategory, int] = {category: 0 for category in SignalCategory}

    def apply_delta(self, kind: SignalKind) -> int:
        """
        Apply the penalty for one confirmed signal.

        Args:
            kind: Kind of the confirmed signal

        Returns:
            The score after the deduction
        """
        category = kind.category
        with self.lock:
            self.counters[category] += 1
            self.score = max(MIN_SCORE, self.score - CATEGORY_PENALTIES[category])
            score = self.score
        logger.debug(f"{kind.value} -> {category.value}, score now {score}")
        return score

    def reset(self) -> None:
        with self.lock:
            self.score = INITIAL_SCORE
            self.counters = {category: 0 for category in SignalCategory}

    @property
    def focus_lost_count(self) -> int:
        return self.counters[SignalCategory.ATTENTION_LOSS]

    @property
    def suspicious_item_count(self) -> int:
        return self.counters[SignalCategory.SUSPICIOUS_ITEM]

    @property
    def drowsiness_count(self) -> int:
        return self.counters[SignalCategory.DROWSINESS]

    def to_dict(self) -> Dict[str, Any]:
        with self.lock:
            return {
                'integrity_score': self.score,
                'focus_lost_count': self.counters[SignalCategory.ATTENTION_LOSS],
                'suspicious_item_count': self.counters[SignalCategory.SUSPICIOUS_ITEM],
                'drowsiness_count': self.counters[SignalCategory.DROWSINESS],
            }
