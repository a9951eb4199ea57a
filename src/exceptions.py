"""
Drill engine exceptions.

Every error carries a machine-readable code so the operator API can map it
to a response without inspecting message text.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DrillError(Exception):
    """Base exception for all drill engine errors."""

    def __init__(
        self,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response format."""
        result: Dict[str, Any] = {
            "error": self.code,
            "detail": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Resource errors (fatal for the session)
# =============================================================================

class AcquisitionError(DrillError):
    """Raised when the camera or audio device cannot be acquired."""
    def __init__(self, message: str, device: str):
        super().__init__(message, "ACQUISITION_FAILED", {"device": device})


class VideoNotReadyError(DrillError):
    """Raised when arming is requested before the video source has metadata."""
    def __init__(self, message: str = "VIDEO STREAM FAILURE."):
        super().__init__(message, "VIDEO_NOT_READY")


# =============================================================================
# Recoverable errors
# =============================================================================

class ClassificationError(DrillError):
    """Raised by the automatic zone classifier; always downgraded to manual logging."""
    def __init__(self, message: str):
        super().__init__(message, "CLASSIFICATION_FAILED")


class ConfigurationError(DrillError):
    """Raised when a session target or drill setting is invalid."""
    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, "INVALID_CONFIGURATION", details)


class SessionStateError(DrillError):
    """Raised when an operation is not allowed in the current session or drill state."""
    def __init__(self, message: str, state: Optional[str] = None):
        details = {"state": state} if state else {}
        super().__init__(message, "INVALID_STATE", details)
