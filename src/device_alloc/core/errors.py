"""Exception hierarchy for validation and allocation failures.

Structural problems with an input entity raise :class:`ValidationError`.
Semantic failures while allocating a claim raise one of the
:class:`AllocationError` subclasses, each classified by a
:class:`FailureReason` so callers can decide whether to retry.
"""

from __future__ import annotations

from enum import Enum


class ValidationError(ValueError):
    """Structural error in an input entity.

    Parameters
    ----------
    path : str
        Dotted/indexed location of the offending field, for example
        ``claim.requests[0].oneOf[1].count``.
    message : str
        Description of the problem.

    Notes
    -----
    Validation errors are never retryable. The input must be corrected.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}" if path else message)


class SelectorCompileError(ValidationError):
    """Selector expression could not be compiled."""

    def __init__(self, path: str, message: str, *, expression: str) -> None:
        self.expression = expression
        super().__init__(path, message)


class FailureReason(str, Enum):
    """Classification of allocation failures.

    Attributes
    ----------
    NO_MATCH
        Too few devices satisfy a request's filters and count range.
    CONSTRAINT_VIOLATION
        A cross-device match constraint failed.
    RACE_LOST
        A staged reservation was taken by a concurrent resolution.
    TRANSIENT
        Race losses persisted beyond the retry limit.
    """

    NO_MATCH = "no_match"
    CONSTRAINT_VIOLATION = "constraint_violation"
    RACE_LOST = "race_lost"
    TRANSIENT = "transient"


class AllocationError(RuntimeError):
    """Base class for classified allocation failures."""

    reason: FailureReason = FailureReason.NO_MATCH
    retryable: bool = False

    def __init__(self, message: str, *, request_name: str | None = None) -> None:
        self.request_name = request_name
        super().__init__(message)


class NoMatchError(AllocationError):
    """Filters matched too few devices for the requested count range."""

    reason = FailureReason.NO_MATCH


class ConstraintViolationError(AllocationError):
    """Devices chosen for a claim disagree on a matched attribute."""

    reason = FailureReason.CONSTRAINT_VIOLATION

    def __init__(self, message: str, *, attribute: str, request_name: str | None = None) -> None:
        self.attribute = attribute
        super().__init__(message, request_name=request_name)


class RaceLostError(AllocationError):
    """A device was reserved by a concurrent resolution after the snapshot."""

    reason = FailureReason.RACE_LOST
    retryable = True

    def __init__(self, message: str, *, device_name: str) -> None:
        self.device_name = device_name
        super().__init__(message)


class TransientAllocationError(AllocationError):
    """Concurrent resolutions kept winning races until retries ran out."""

    reason = FailureReason.TRANSIENT
    retryable = True

    def __init__(self, message: str, *, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(message)


__all__ = [
    "AllocationError",
    "ConstraintViolationError",
    "FailureReason",
    "NoMatchError",
    "RaceLostError",
    "SelectorCompileError",
    "TransientAllocationError",
    "ValidationError",
]
