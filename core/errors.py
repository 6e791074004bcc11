"""
Exception types raised across the capture session.
"""
from __future__ import annotations


class AcquisitionError(RuntimeError):
    """Camera or microphone could not be acquired."""

    def __init__(self, message: str, reason: str = "unavailable"):
        super().__init__(message)
        self.reason = reason if reason in ("denied", "unavailable") else "unavailable"

    @property
    def denied(self) -> bool:
        return self.reason == "denied"


class SubmissionError(RuntimeError):
    """Upload failed in transport or the backend answered success=false."""


class SessionStateError(RuntimeError):
    """Operation requested in a state that does not allow it."""
