"""Exception hierarchy for the conversation view core.

Sanitization never raises; these cover the send path and the mail API.
"""

from __future__ import annotations

from typing import Optional


class ThreadGuardError(Exception):
    """Base class for all threadguard errors."""


class MailApiError(ThreadGuardError):
    """The mail API answered with a non-2xx status or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[dict] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class DifficultyRetryRequested(MailApiError):
    """HTTP 429 asking the client to resubmit with a harder proof-of-work token."""

    def __init__(self, message: str, payload: Optional[dict] = None) -> None:
        super().__init__(message, status_code=429, payload=payload)

    @property
    def minimum_difficulty(self) -> Optional[int]:
        bits = self.payload.get("minimumDifficulty")
        if isinstance(bits, int) and not isinstance(bits, bool):
            return bits
        return None


class VerificationTimeout(ThreadGuardError):
    """No human-verification token arrived before the ceiling."""


class AttachmentUploadError(ThreadGuardError):
    """The attachment uploader rejected the staged files."""
