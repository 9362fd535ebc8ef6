"""Canonical remote store protocol and its in-process implementation.

The reconciliation service and the player only see the async `RemoteStore`
protocol. `InProcessRemoteStore` serves it straight from the canonical
repositories with optional simulated latency and failures;
`assessment_engine.logic.remote_client.HttpRemoteStore` serves it over HTTP.
"""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Protocol

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from assessment_engine.errors import PermanentRemoteError, TransientRemoteError
from assessment_engine.logic import repository_assessments, repository_responses
from assessment_engine.logic.idempotency import new_idempotency_key
from assessment_engine.logic.simulation import WriteSimulator
from assessment_engine.models.assessment import AssessmentDocument
from assessment_engine.models.response import ResponseRecord

logger = logging.getLogger(__name__)


class AssessmentFilter(BaseModel):
    job_id: Optional[str] = None
    search: Optional[str] = None
    status: str = "all"


class RemoteStore(Protocol):
    async def list_assessments(self, filter: Optional[AssessmentFilter] = None) -> List[AssessmentDocument]: ...

    async def get_assessment_by_job(self, job_id: str) -> Optional[AssessmentDocument]: ...

    async def get_assessment(self, assessment_id: str) -> Optional[AssessmentDocument]: ...

    async def create_assessment(
        self, job_id: str, document: AssessmentDocument, idempotency_key: Optional[str] = None
    ) -> AssessmentDocument: ...

    async def update_assessment(
        self, assessment_id: str, job_id: str, document: AssessmentDocument
    ) -> AssessmentDocument: ...

    async def save_assessment(self, job_id: str, document: AssessmentDocument) -> AssessmentDocument: ...

    async def submit_response(
        self,
        assessment_id: str,
        candidate_id: str,
        answers: Mapping[str, object],
        elapsed_seconds: int,
        job_id: str = "",
    ) -> ResponseRecord: ...


_LIST_PAGE_SIZE = 200


class InProcessRemoteStore:
    """RemoteStore backed directly by the canonical repositories."""

    def __init__(self, simulator: Optional[WriteSimulator] = None) -> None:
        self._simulator = simulator or WriteSimulator()

    async def list_assessments(self, filter: Optional[AssessmentFilter] = None) -> List[AssessmentDocument]:
        flt = filter or AssessmentFilter()
        out: List[AssessmentDocument] = []
        page = 1
        try:
            while True:
                items, total = repository_assessments.list_assessments(
                    job_id=flt.job_id, search=flt.search, status=flt.status, page=page, page_size=_LIST_PAGE_SIZE
                )
                out.extend(items)
                if not items or len(out) >= total:
                    break
                page += 1
        except SQLAlchemyError as exc:
            raise TransientRemoteError(str(exc), kind="service_unavailable") from exc
        return out

    async def get_assessment_by_job(self, job_id: str) -> Optional[AssessmentDocument]:
        try:
            return repository_assessments.get_assessment_by_job(job_id)
        except SQLAlchemyError as exc:
            raise TransientRemoteError(str(exc), kind="service_unavailable") from exc

    async def get_assessment(self, assessment_id: str) -> Optional[AssessmentDocument]:
        try:
            return repository_assessments.get_assessment(assessment_id)
        except SQLAlchemyError as exc:
            raise TransientRemoteError(str(exc), kind="service_unavailable") from exc

    async def create_assessment(
        self, job_id: str, document: AssessmentDocument, idempotency_key: Optional[str] = None
    ) -> AssessmentDocument:
        await self._simulator.before_write("create_assessment")
        try:
            record, _created = repository_assessments.create_assessment(job_id, document, idempotency_key)
        except SQLAlchemyError as exc:
            raise TransientRemoteError(str(exc), kind="service_unavailable") from exc
        return record

    async def update_assessment(
        self, assessment_id: str, job_id: str, document: AssessmentDocument
    ) -> AssessmentDocument:
        await self._simulator.before_write("update_assessment")
        try:
            record = repository_assessments.update_assessment(assessment_id, job_id, document)
        except SQLAlchemyError as exc:
            raise TransientRemoteError(str(exc), kind="service_unavailable") from exc
        if record is None:
            raise PermanentRemoteError(f"Assessment {assessment_id} not found", status=404)
        return record

    async def save_assessment(self, job_id: str, document: AssessmentDocument) -> AssessmentDocument:
        """Update when ``document.id`` exists in the store, else create."""
        existing = await self.get_assessment(document.id) if document.id else None
        if existing is not None:
            return await self.update_assessment(existing.id, job_id, document)
        return await self.create_assessment(job_id, document, new_idempotency_key())

    async def submit_response(
        self,
        assessment_id: str,
        candidate_id: str,
        answers: Mapping[str, object],
        elapsed_seconds: int,
        job_id: str = "",
    ) -> ResponseRecord:
        await self._simulator.before_write("submit_response")
        try:
            return repository_responses.insert_response(assessment_id, candidate_id, answers, elapsed_seconds)
        except SQLAlchemyError as exc:
            raise TransientRemoteError(str(exc), kind="service_unavailable") from exc


__all__ = ["AssessmentFilter", "RemoteStore", "InProcessRemoteStore"]
