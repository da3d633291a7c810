"""Exception taxonomy for quiz scoring and gamification bookkeeping."""

from __future__ import annotations


class ScoringError(Exception):
    """Base class; `status` is the HTTP status the routes report."""

    status = 500
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ScoringError):
    """Submission rejected before any grading or state change."""

    status = 400


class NotFoundError(ScoringError):
    status = 404


class PermissionDeniedError(ScoringError):
    status = 403


class ConflictError(ScoringError):
    """Read-modify-write kept losing to concurrent writers; safe to retry."""

    status = 409
    retryable = True


class DownstreamUpdateError(ScoringError):
    """
    A secondary effect (progress or analytics) failed after the Result was
    stored. Reported as a warning; the Result stays authoritative.
    """

    def __init__(self, effect: str, cause: Exception):
        super().__init__(f"{effect} update failed: {cause}")
        self.effect = effect
        self.cause = cause
        self.retryable = isinstance(cause, ConflictError)
