"""Assessment data access helpers for the canonical store."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import text as sql_text
from sqlalchemy.exc import IntegrityError

from assessment_engine.db.base import get_engine
from assessment_engine.models.assessment import AssessmentDocument, utcnow

logger = logging.getLogger(__name__)

_COLUMNS = "assessment_id, job_id, document, created_at, updated_at"


def _stamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_document(row) -> AssessmentDocument:
    data = json.loads(row[2])
    doc = AssessmentDocument.model_validate(data)
    return doc.model_copy(
        update={
            "id": str(row[0]),
            "job_id": str(row[1]),
            "created_at": datetime.fromisoformat(str(row[3])),
            "updated_at": datetime.fromisoformat(str(row[4])),
        }
    )


def _serialize(document: AssessmentDocument) -> str:
    return document.model_dump_json(by_alias=True, exclude_none=True)


def get_assessment(assessment_id: str) -> Optional[AssessmentDocument]:
    if not assessment_id:
        return None
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text(f"SELECT {_COLUMNS} FROM assessment WHERE assessment_id = :id"),
            {"id": assessment_id},
        ).fetchone()
    return _row_to_document(row) if row else None


def get_assessment_by_job(job_id: str) -> Optional[AssessmentDocument]:
    """Return the first (oldest) assessment attached to ``job_id``, or None."""
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text(
                f"SELECT {_COLUMNS} FROM assessment WHERE job_id = :jid ORDER BY created_at ASC, assessment_id ASC LIMIT 1"
            ),
            {"jid": job_id},
        ).fetchone()
    return _row_to_document(row) if row else None


def _get_by_idempotency_key(conn, key: str) -> Optional[AssessmentDocument]:
    row = conn.execute(
        sql_text(f"SELECT {_COLUMNS} FROM assessment WHERE idempotency_key = :k"),
        {"k": key},
    ).fetchone()
    return _row_to_document(row) if row else None


def list_assessments(
    job_id: Optional[str] = None,
    search: Optional[str] = None,
    status: str = "all",
    page: int = 1,
    page_size: int = 50,
) -> Tuple[List[AssessmentDocument], int]:
    """Return one page of assessments (newest first) and the total match count.

    ``status`` is ``published``, ``draft`` or ``all``; ``search`` matches title
    or description case-insensitively.
    """
    clauses: List[str] = []
    params: dict = {}
    if job_id:
        clauses.append("job_id = :jid")
        params["jid"] = job_id
    if search and search.strip():
        clauses.append("(LOWER(title) LIKE :q ESCAPE '\\' OR LOWER(description) LIKE :q ESCAPE '\\')")
        params["q"] = f"%{_escape_like(search.strip().lower())}%"
    if status == "published":
        clauses.append("is_published = 1")
    elif status == "draft":
        clauses.append("is_published = 0")
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

    page = max(1, int(page))
    page_size = max(1, int(page_size))
    eng = get_engine()
    with eng.connect() as conn:
        total = int(conn.execute(sql_text(f"SELECT COUNT(*) FROM assessment{where}"), params).scalar() or 0)
        rows = conn.execute(
            sql_text(
                f"SELECT {_COLUMNS} FROM assessment{where} "
                "ORDER BY created_at DESC, assessment_id ASC LIMIT :limit OFFSET :offset"
            ),
            {**params, "limit": page_size, "offset": (page - 1) * page_size},
        ).fetchall()
    return [_row_to_document(r) for r in rows], total


def create_assessment(
    job_id: str,
    document: AssessmentDocument,
    idempotency_key: Optional[str] = None,
) -> Tuple[AssessmentDocument, bool]:
    """Insert a new assessment with a freshly minted id.

    Returns ``(record, created)``. When ``idempotency_key`` was already used,
    the record created for it is returned with ``created=False``.
    """
    eng = get_engine()
    if idempotency_key:
        with eng.connect() as conn:
            existing = _get_by_idempotency_key(conn, idempotency_key)
        if existing is not None:
            logger.info("assessment_create_replayed id=%s key=%s", existing.id, idempotency_key)
            return existing, False

    now = utcnow()
    record = document.model_copy(
        update={"id": str(uuid.uuid4()), "job_id": job_id, "created_at": now, "updated_at": now}
    )
    try:
        with eng.begin() as conn:
            conn.execute(
                sql_text(
                    """
                    INSERT INTO assessment (
                        assessment_id, job_id, title, description, is_published,
                        document, idempotency_key, created_at, updated_at
                    ) VALUES (:id, :jid, :title, :description, :published, :document, :key, :created_at, :updated_at)
                    """
                ),
                {
                    "id": record.id,
                    "jid": job_id,
                    "title": record.title,
                    "description": record.description,
                    "published": 1 if record.is_published else 0,
                    "document": _serialize(record),
                    "key": idempotency_key or None,
                    "created_at": _stamp(now),
                    "updated_at": _stamp(now),
                },
            )
    except IntegrityError:
        if not idempotency_key:
            raise
        # Concurrent create with the same key: the other insert won
        with eng.connect() as conn:
            existing = _get_by_idempotency_key(conn, idempotency_key)
        if existing is None:
            raise
        return existing, False
    logger.info("assessment_created id=%s job_id=%s", record.id, job_id)
    return record, True


def update_assessment(assessment_id: str, job_id: str, document: AssessmentDocument) -> Optional[AssessmentDocument]:
    """Replace the stored document for ``assessment_id``; None when it does not exist."""
    eng = get_engine()
    with eng.begin() as conn:
        row = conn.execute(
            sql_text("SELECT created_at FROM assessment WHERE assessment_id = :id"),
            {"id": assessment_id},
        ).fetchone()
        if row is None:
            return None
        now = utcnow()
        record = document.model_copy(
            update={
                "id": assessment_id,
                "job_id": job_id,
                "created_at": datetime.fromisoformat(str(row[0])),
                "updated_at": now,
            }
        )
        conn.execute(
            sql_text(
                """
                UPDATE assessment
                SET job_id = :jid, title = :title, description = :description,
                    is_published = :published, document = :document, updated_at = :updated_at
                WHERE assessment_id = :id
                """
            ),
            {
                "id": assessment_id,
                "jid": job_id,
                "title": record.title,
                "description": record.description,
                "published": 1 if record.is_published else 0,
                "document": _serialize(record),
                "updated_at": _stamp(now),
            },
        )
    logger.info("assessment_updated id=%s job_id=%s", assessment_id, job_id)
    return record


def count_assessments(job_id: Optional[str] = None) -> int:
    eng = get_engine()
    with eng.connect() as conn:
        if job_id:
            value = conn.execute(
                sql_text("SELECT COUNT(*) FROM assessment WHERE job_id = :jid"), {"jid": job_id}
            ).scalar()
        else:
            value = conn.execute(sql_text("SELECT COUNT(*) FROM assessment")).scalar()
    return int(value or 0)


__all__ = [
    "get_assessment",
    "get_assessment_by_job",
    "list_assessments",
    "create_assessment",
    "update_assessment",
    "count_assessments",
]
