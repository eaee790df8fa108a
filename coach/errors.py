"""Exception types shared across the coach pipeline."""

from __future__ import annotations


class CoachError(Exception):
    """Base class for coach errors."""


class ConfigurationError(CoachError):
    """A required credential or setting is missing."""


class UpstreamError(CoachError):
    """The remote model endpoint failed or returned an unreadable body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
