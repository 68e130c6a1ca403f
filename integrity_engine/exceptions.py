"""
Integrity Engine Exceptions - Error taxonomy for the monitoring core.
"""


class ProctoringError(Exception):
    """Base class for all errors raised by the monitoring core."""


class InvalidSessionStartError(ProctoringError):
    """Raised when a session is started without a usable candidate identifier."""


class SessionStateError(ProctoringError):
    """Raised on an illegal lifecycle transition or a premature report request."""


class ResourceUnavailableError(ProctoringError):
    """Raised when a camera, recorder or detector cannot be acquired at start."""


class DetectorUnavailableError(ResourceUnavailableError):
    """Raised when a detector backend is not installed or fails to load."""


class ConfigurationError(ProctoringError):
    """Raised when monitor configuration cannot be read or is invalid."""
