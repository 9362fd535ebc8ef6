"""Reconciliation of local assessments with the canonical remote store.

`ReconciliationService.save` decides between create and update, retries
transient failures with exponential backoff, clears the local author draft on
success and turns final failures into a typed, user-facing
`ReconciliationError`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict

from assessment_engine.config import ReconciliationConfig
from assessment_engine.errors import (
    PermanentRemoteError,
    ReconciliationError,
    SaveInProgressError,
    TransientRemoteError,
)
from assessment_engine.logic.draft_store import DraftStore, author_key
from assessment_engine.logic.events import (
    ASSESSMENT_CREATED,
    ASSESSMENT_UPDATED,
    NOTIFY_ERROR,
    NOTIFY_SUCCESS,
    LoggingNotifier,
    Notifier,
    publish,
)
from assessment_engine.logic.idempotency import new_idempotency_key
from assessment_engine.logic.remote_store import RemoteStore
from assessment_engine.models.assessment import Assessment, AssessmentDocument

logger = logging.getLogger(__name__)

USER_MESSAGES = {
    "service_unavailable": "Service temporarily unavailable. Please check your connection and try again.",
    "server_error": "Server error occurred. Please try saving again in a moment.",
    "communication_error": "Communication error with server. Please refresh and try again.",
}
DEFAULT_USER_MESSAGE = "Failed to save assessment. Please try again."
RETRY_HINT = " Click here to retry."


def user_message_for(kind: str) -> str:
    return USER_MESSAGES.get(kind, DEFAULT_USER_MESSAGE)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based): 1 s, 2 s, 4 s... by default."""
        return self.base_delay * (2 ** attempt)

    @classmethod
    def from_config(cls, config: ReconciliationConfig) -> "RetryPolicy":
        return cls(max_attempts=config.max_attempts, base_delay=config.backoff_base_seconds)


class Created(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["created"] = "created"
    id: str
    record: Assessment


class Updated(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["updated"] = "updated"
    id: str
    record: Assessment


SaveResult = Union[Created, Updated]


class ReconciliationService:
    def __init__(
        self,
        remote: RemoteStore,
        draft_store: Optional[DraftStore] = None,
        notifier: Optional[Notifier] = None,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._remote = remote
        self._drafts = draft_store
        self._notifier = notifier or LoggingNotifier()
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._in_flight: Set[str] = set()

    def is_saving(self, assessment_id: str) -> bool:
        return assessment_id in self._in_flight

    async def save(self, job_id: str, assessment: Assessment) -> SaveResult:
        """Persist ``assessment`` remotely, creating or updating as needed.

        Raises SaveInProgressError when a save for the same assessment is
        still outstanding, and ReconciliationError once retries are exhausted
        or the remote store rejects the payload.
        """
        local_id = assessment.id
        if local_id in self._in_flight:
            raise SaveInProgressError(f"A save for assessment {local_id or '<new>'} is already in progress")
        self._in_flight.add(local_id)
        try:
            return await self._save(job_id, assessment)
        finally:
            self._in_flight.discard(local_id)

    async def _attempt(
        self, job_id: str, assessment: Assessment, document: AssessmentDocument, idempotency_key: str
    ) -> SaveResult:
        existing = await self._remote.get_assessment(assessment.id) if assessment.id else None
        if existing is not None:
            record = await self._remote.update_assessment(existing.id, job_id, document)
            return Updated(id=record.id, record=Assessment.from_document(record))
        record = await self._remote.create_assessment(job_id, document, idempotency_key)
        return Created(id=record.id, record=Assessment.from_document(record))

    async def _save(self, job_id: str, assessment: Assessment) -> SaveResult:
        document = assessment.to_document()
        idempotency_key = new_idempotency_key()
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await self._attempt(job_id, assessment, document, idempotency_key)
                break
            except PermanentRemoteError as exc:
                logger.error("reconciliation_rejected id=%s attempt=%s error=%s", assessment.id, attempt, exc)
                self._fail("rejected", attempt, exc)
            except TransientRemoteError as exc:
                if attempt >= self.retry.max_attempts:
                    logger.error(
                        "reconciliation_exhausted id=%s attempts=%s kind=%s error=%s",
                        assessment.id,
                        attempt,
                        exc.kind,
                        exc,
                    )
                    self._fail(exc.kind, attempt, exc)
                delay = self.retry.delay_for(attempt)
                logger.warning(
                    "reconciliation_retry id=%s attempt=%s delay=%s kind=%s", assessment.id, attempt, delay, exc.kind
                )
                await self._sleep(delay)

        if self._drafts is not None:
            self._drafts.cancel_pending(author_key(assessment.id))
            self._drafts.clear_author_draft(assessment.id)
        event = ASSESSMENT_CREATED if isinstance(result, Created) else ASSESSMENT_UPDATED
        publish(event, {"assessment_id": result.id, "local_id": assessment.id, "job_id": job_id, "attempts": attempt})
        self._notifier.notify(NOTIFY_SUCCESS, "Assessment saved successfully")
        return result

    def _fail(self, kind: str, attempts: int, cause: Exception) -> None:
        message = user_message_for(kind)
        self._notifier.notify(NOTIFY_ERROR, message + RETRY_HINT)
        raise ReconciliationError(kind, message, attempts, cause) from cause


__all__ = [
    "USER_MESSAGES",
    "DEFAULT_USER_MESSAGE",
    "RETRY_HINT",
    "user_message_for",
    "RetryPolicy",
    "Created",
    "Updated",
    "SaveResult",
    "ReconciliationService",
]
