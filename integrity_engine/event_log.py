"""
Event Log - Append-only record of confirmed signals for one attempt.
"""

import threading
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .models import ConfirmedSignal


class EventLog:
    """
    Ordered, append-only list of confirmed signals.

    Entries keep emission order and are only removed by ``clear`` when a new
    attempt starts.
    """

    def __init__(self):
        self._events: List[ConfirmedSignal] = []
        self._lock = threading.Lock()

    def append(self, event: ConfirmedSignal) -> None:
        with self._lock:
            self._events.append(event)

    def chronological(self) -> Tuple[ConfirmedSignal, ...]:
        """All events in the order they were confirmed."""
        with self._lock:
            return tuple(self._events)

    def reverse_chronological(self, limit: Optional[int] = None) -> List[ConfirmedSignal]:
        """
        Newest events first, as shown in a live feed.

        Args:
            limit: Maximum number of events to return (all when None)
        """
        with self._lock:
            newest_first = list(reversed(self._events))
        if limit is not None:
            newest_first = newest_first[:max(0, limit)]
        return newest_first

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [event.to_dict() for event in self.chronological()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __iter__(self) -> Iterator[ConfirmedSignal]:
        return iter(self.chronological())
