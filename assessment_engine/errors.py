"""Exception hierarchy for the assessment engine.

All errors raised across module boundaries derive from
`AssessmentEngineError` so callers can catch engine failures without
swallowing unrelated exceptions.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence


class AssessmentEngineError(Exception):
    """Base class for assessment engine failures."""


class AuthoringValidationError(AssessmentEngineError):
    """Whole-assessment validation failed at save time.

    `errors` keeps the ordered list produced by the validator; only the first
    entry is meant to be shown to the author.
    """

    def __init__(self, errors: Sequence[Any]):
        self.errors = list(errors)
        first = getattr(self.errors[0], "message", str(self.errors[0])) if self.errors else "invalid assessment"
        super().__init__(first)

    @property
    def first_message(self) -> str:
        return str(self)


class ConditionalReferenceError(AssessmentEngineError):
    """A conditional names itself, a later question, or an unknown question."""


class StructureError(AssessmentEngineError):
    """A builder operation addressed a section or question that does not exist."""


class AnswerValidationError(AssessmentEngineError):
    """One or more visible questions of a section failed their answer rules."""

    def __init__(self, failures: Mapping[str, Any]):
        self.failures = dict(failures)
        super().__init__(f"{len(self.failures)} question(s) failed validation: {sorted(self.failures)}")


class RemoteStoreError(AssessmentEngineError):
    """Base class for failures reported by the canonical remote store."""


class TransientRemoteError(RemoteStoreError):
    """Network-level or 5xx-equivalent failure; safe to retry.

    `kind` is one of ``service_unavailable``, ``server_error`` or
    ``communication_error`` and drives the user-facing message.
    """

    def __init__(self, message: str, kind: str = "server_error", status: int | None = None):
        self.kind = kind
        self.status = status
        super().__init__(message)


class PermanentRemoteError(RemoteStoreError):
    """Malformed payload or 4xx-equivalent failure; never retried."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class ReconciliationError(AssessmentEngineError):
    """Typed, user-facing failure after the reconciliation attempts are exhausted."""

    def __init__(self, kind: str, user_message: str, attempts: int, cause: Exception | None = None):
        self.kind = kind
        self.user_message = user_message
        self.attempts = attempts
        self.cause = cause
        super().__init__(user_message)


class SaveInProgressError(AssessmentEngineError):
    """A save for the same assessment is already outstanding."""


__all__ = [
    "AssessmentEngineError",
    "AuthoringValidationError",
    "ConditionalReferenceError",
    "StructureError",
    "AnswerValidationError",
    "RemoteStoreError",
    "TransientRemoteError",
    "PermanentRemoteError",
    "ReconciliationError",
    "SaveInProgressError",
]
