"""Submitted response data access helpers."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Mapping

from sqlalchemy import text as sql_text

from assessment_engine.db.base import get_engine
from assessment_engine.models.assessment import utcnow
from assessment_engine.models.response import ResponseRecord

logger = logging.getLogger(__name__)


def insert_response(
    assessment_id: str,
    candidate_id: str,
    responses: Mapping[str, object],
    time_spent: int,
) -> ResponseRecord:
    record = ResponseRecord(
        id=str(uuid.uuid4()),
        assessment_id=assessment_id,
        candidate_id=candidate_id,
        responses=dict(responses),
        submitted_at=utcnow(),
        time_spent=int(time_spent),
    )
    eng = get_engine()
    with eng.begin() as conn:
        conn.execute(
            sql_text(
                """
                INSERT INTO assessment_response (
                    response_id, assessment_id, candidate_id, responses, time_spent, submitted_at
                ) VALUES (:id, :aid, :cid, :responses, :time_spent, :submitted_at)
                """
            ),
            {
                "id": record.id,
                "aid": assessment_id,
                "cid": candidate_id,
                "responses": json.dumps(record.responses, ensure_ascii=False),
                "time_spent": record.time_spent,
                "submitted_at": record.submitted_at.astimezone(timezone.utc).isoformat(timespec="microseconds"),
            },
        )
    logger.info("response_inserted id=%s assessment_id=%s candidate_id=%s", record.id, assessment_id, candidate_id)
    return record


def list_responses(assessment_id: str) -> List[ResponseRecord]:
    eng = get_engine()
    with eng.connect() as conn:
        rows = conn.execute(
            sql_text(
                """
                SELECT response_id, assessment_id, candidate_id, responses, time_spent, submitted_at
                FROM assessment_response
                WHERE assessment_id = :aid
                ORDER BY submitted_at ASC, response_id ASC
                """
            ),
            {"aid": assessment_id},
        ).fetchall()
    return [
        ResponseRecord(
            id=str(r[0]),
            assessment_id=str(r[1]),
            candidate_id=str(r[2]),
            responses=json.loads(r[3]),
            time_spent=int(r[4]),
            submitted_at=datetime.fromisoformat(str(r[5])),
        )
        for r in rows
    ]


__all__ = ["insert_response", "list_responses"]
