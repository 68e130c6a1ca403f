"""
Integrity Engine Interfaces - Base classes for the collaborators a session drives.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any


class DetectionSource(ABC):
    """
    Abstract base class for all detection sources.

    A session starts every attached source when an attempt begins and stops
    it when the attempt ends.
    """

    @abstractmethod
    def get_source_name(self) -> str:
        """Return the unique name of this detection source."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this detection source is available and can be used."""
        pass

    @abstractmethod
    def start_detection(self) -> None:
        """Start the detection process."""
        pass

    @abstractmethod
    def stop_detection(self) -> None:
        """Stop the detection process and cleanup resources."""
        pass

    def get_health_status(self) -> Dict[str, Any]:
        """Return health status information for monitoring."""
        return {
            'source_name': self.get_source_name(),
            'is_available': self.is_available(),
            'status': 'unknown'
        }

    def update_config(self, config: Dict[str, Any]) -> None:
        """Update configuration for this detection source."""
        pass


class RecordingAdapter(ABC):
    """
    Abstract base class for the video recorder of an attempt.

    Encoding details and uploading the returned blob are the recorder's and
    the caller's business respectively.
    """

    @abstractmethod
    def start(self) -> None:
        """Begin recording."""
        pass

    @abstractmethod
    def stop(self) -> bytes:
        """Finish recording and return the encoded video."""
        pass

    def write_frame(self, frame) -> None:
        """Append one captured frame. Recorders fed elsewhere can ignore this."""
        pass


class PersistenceSink(ABC):
    """
    Abstract base class for storage of confirmed events and final reports.
    """

    @abstractmethod
    def persist_event(self, event, candidate_id: str) -> None:
        """Store one confirmed signal."""
        pass

    @abstractmethod
    def persist_report(self, report) -> None:
        """Store the final report of an attempt."""
        pass
