"""Canonical assessment store endpoints.

Mounted under ``/api/v1``. Write routes pass through the app's
`WriteSimulator` so latency and failures can be injected in development;
a simulated failure surfaces as a 503 problem document.
"""

from __future__ import annotations

import logging
import math
from typing import Literal, Optional

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import JSONResponse

from assessment_engine.http.problem import problem_response
from assessment_engine.logic import repository_assessments, repository_responses
from assessment_engine.logic.assessment_validation import validate_conditionals
from assessment_engine.logic.idempotency import normalize_idempotency_key
from assessment_engine.logic.simulation import WriteSimulator
from assessment_engine.models.assessment import Assessment, AssessmentDocument
from assessment_engine.models.response import SubmitRequest

router = APIRouter()
logger = logging.getLogger(__name__)


def _simulator(request: Request) -> WriteSimulator:
    sim = getattr(request.app.state, "simulator", None)
    if sim is None:
        sim = WriteSimulator()
        request.app.state.simulator = sim
    return sim


@router.get(
    "/assessments",
    summary="List assessments (newest first)",
    operation_id="listAssessments",
    tags=["Assessments"],
)
def list_assessments(
    job_id: Optional[str] = Query(default=None, alias="jobId"),
    search: Optional[str] = Query(default=None),
    status: Literal["all", "published", "draft"] = Query(default="all"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=200, alias="pageSize"),
):
    items, total = repository_assessments.list_assessments(
        job_id=job_id, search=search, status=status, page=page, page_size=page_size
    )
    return {
        "assessments": [doc.to_wire() for doc in items],
        "total": total,
        "page": page,
        "pageSize": page_size,
        "totalPages": math.ceil(total / page_size) if total else 0,
    }


@router.get(
    "/assessments/by-id/{assessment_id}",
    summary="Get an assessment by id",
    operation_id="getAssessment",
    tags=["Assessments"],
)
def get_assessment(assessment_id: str):
    doc = repository_assessments.get_assessment(assessment_id)
    if doc is None:
        return problem_response(404, "Assessment not found", f"No assessment with id {assessment_id}", code="not_found")
    return doc.to_wire()


@router.get(
    "/assessments/{job_id}",
    summary="Get the first assessment attached to a job",
    operation_id="getAssessmentByJob",
    tags=["Assessments"],
)
def get_assessment_by_job(job_id: str):
    doc = repository_assessments.get_assessment_by_job(job_id)
    return doc.to_wire() if doc is not None else None


@router.put(
    "/assessments/{job_id}",
    summary="Create or update an assessment for a job",
    operation_id="saveAssessment",
    tags=["Assessments"],
)
async def save_assessment(
    job_id: str,
    document: AssessmentDocument,
    request: Request,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
) -> JSONResponse:
    """Update when the body id names a stored assessment (200), else create (201).

    Bodies with self, forward or dangling conditional references are rejected
    with 422. Creates mint a new id. Repeating a create with the same
    Idempotency-Key returns the originally created record.
    """
    try:
        key = normalize_idempotency_key(idempotency_key)
    except ValueError as exc:
        return problem_response(400, "Bad Request", str(exc), code="invalid_idempotency_key")

    reference_errors = validate_conditionals(Assessment.from_document(document))
    if reference_errors:
        logger.info("assessments.save.rejected job_id=%s errors=%s", job_id, len(reference_errors))
        return problem_response(
            422,
            "Invalid Conditional Reference",
            reference_errors[0].message,
            code="invalid_conditional_reference",
            errors=[e.model_dump() for e in reference_errors],
        )

    await _simulator(request).before_write("save_assessment")

    if document.id and repository_assessments.get_assessment(document.id) is not None:
        record = repository_assessments.update_assessment(document.id, job_id, document)
        if record is None:
            return problem_response(404, "Assessment not found", f"No assessment with id {document.id}", code="not_found")
        logger.info("assessments.save.updated id=%s job_id=%s", record.id, job_id)
        return JSONResponse(record.to_wire(), status_code=200)

    record, created = repository_assessments.create_assessment(job_id, document, key)
    logger.info("assessments.save.created id=%s job_id=%s replay=%s", record.id, job_id, not created)
    return JSONResponse(record.to_wire(), status_code=201)


@router.post(
    "/assessments/{job_id}/submit",
    summary="Submit a candidate response",
    operation_id="submitResponse",
    tags=["Responses"],
)
async def submit_response(job_id: str, body: SubmitRequest, request: Request) -> JSONResponse:
    assessment_id = body.assessment_id
    doc = (
        repository_assessments.get_assessment(assessment_id)
        if assessment_id
        else repository_assessments.get_assessment_by_job(job_id)
    )
    if doc is None:
        return problem_response(
            404, "Assessment not found", f"No assessment with id {assessment_id or job_id}", code="not_found"
        )

    await _simulator(request).before_write("submit_response")

    record = repository_responses.insert_response(doc.id, body.candidate_id, body.responses, body.time_spent)
    return JSONResponse(record.model_dump(mode="json", by_alias=True), status_code=201)


__all__ = ["router", "list_assessments", "get_assessment", "get_assessment_by_job", "save_assessment", "submit_response"]
