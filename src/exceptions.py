# src/exceptions.py
"""
Shared exception classes for the subject scraper.

Every failure the fetch/resolve pipeline can surface is a SubjectFetchError
carrying a ``kind`` discriminant and an HTTP-equivalent ``status``. Callers
(the retry envelope, the API route) match on ``kind`` rather than on the
concrete subclass or the message text.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NETWORK = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMIT"
    SERVER_ERROR = "SERVER_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UPSTREAM_HTTP = "UPSTREAM_HTTP"
    CHALLENGE_SOLVE = "CHALLENGE_SOLVE_FAILED"
    CHALLENGE_SUBMIT = "CHALLENGE_SUBMIT_FAILED"
    CHALLENGE_FOLLOW_UP = "CHALLENGE_FOLLOW_UP_FAILED"
    UNRESOLVED = "CHALLENGE_UNRESOLVED"
    PARSE = "PARSE_ERROR"


class SubjectFetchError(Exception):
    """
    Base class for all pipeline failures.

    Attributes:
        kind:    ErrorKind discriminant.
        status:  HTTP-equivalent status code, or None when no response exists.
        message: Human-readable description.
    """

    kind: ErrorKind = ErrorKind.NETWORK
    default_status: int | None = None

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status if status is not None else self.default_status

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value}, "
            f"status={self.status}, message={self.message!r})"
        )


class NetworkError(SubjectFetchError):
    """Transport-level failure; no response was received."""

    kind = ErrorKind.NETWORK


class FetchTimeoutError(SubjectFetchError):
    """The request was aborted before completion (timeout or cancellation)."""

    kind = ErrorKind.TIMEOUT
    default_status = 504


class UpstreamHttpError(SubjectFetchError):
    """Final response was non-2xx and carried no challenge."""

    kind = ErrorKind.UPSTREAM_HTTP

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message, status)


class ChallengeSolveError(SubjectFetchError):
    """
    No nonce satisfied the puzzle within the nonce budget.

    Usually means the puzzle was mis-parsed or the upstream algorithm/difficulty
    changed. Not retryable.
    """

    kind = ErrorKind.CHALLENGE_SOLVE
    default_status = 403


class ChallengeSubmitError(SubjectFetchError):
    """Every candidate submit endpoint failed."""

    kind = ErrorKind.CHALLENGE_SUBMIT
    default_status = 403


class ChallengeFollowUpError(SubjectFetchError):
    """The GET after a submission failed without revealing a new challenge."""

    kind = ErrorKind.CHALLENGE_FOLLOW_UP
    default_status = 403


class ChallengeUnresolvedError(SubjectFetchError):
    """The attempt cap was exhausted with a challenge still present."""

    kind = ErrorKind.UNRESOLVED
    default_status = 403


class ParseError(SubjectFetchError):
    """Resolved HTML did not have the expected page structure."""

    kind = ErrorKind.PARSE
    default_status = 500


__all__ = [
    "ErrorKind",
    "SubjectFetchError",
    "NetworkError",
    "FetchTimeoutError",
    "UpstreamHttpError",
    "ChallengeSolveError",
    "ChallengeSubmitError",
    "ChallengeFollowUpError",
    "ChallengeUnresolvedError",
    "ParseError",
]
