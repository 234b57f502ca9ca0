"""
Error Taxonomy
==============

Exceptions raised by the timelapse core.

The HTTP layer maps each class to a status code:
    - InvalidRequestError  -> 400
    - FramesNotFoundError  -> 404
    - FrameIOError         -> 500
    - EncodeError          -> 500

ConfigurationError is raised during startup and stops the service.
"""

from typing import Optional


class TimelapseError(Exception):
    """Base class for all timelapse errors."""
    pass


class ConfigurationError(TimelapseError):
    """Raised when required configuration is missing or invalid."""
    pass


class InvalidRequestError(TimelapseError):
    """Raised when path or query parameters cannot be parsed."""
    pass


class FramesNotFoundError(TimelapseError):
    """Raised when the selected window contains no frames."""
    pass


class FrameIOError(TimelapseError):
    """Raised when a frame folder or frame file cannot be read."""
    pass


class EncodeError(TimelapseError):
    """
    Raised when the encoder fails.

    Attributes:
        reason: Short description of the failure
        stderr: Diagnostic output of the encoder (server-side only)
    """

    def __init__(self, reason: str, stderr: Optional[str] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.stderr = stderr
