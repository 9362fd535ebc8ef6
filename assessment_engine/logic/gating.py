"""Gating verdict computation.

Computes a gating verdict with the shape `{ ok: bool, blocking_items: [] }` for
the visible questions of a section. Hidden questions never block, even when
required.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping
import logging

from assessment_engine.logic.answer_validation import Violation, evaluate_section
from assessment_engine.models.assessment import Question

logger = logging.getLogger(__name__)

MISSING_REQUIRED_ANSWER = "missing_required_answer"


def evaluate_gating(
    questions: Iterable[Question],
    answers: Mapping[str, Any],
    visible_ids: Iterable[str],
) -> Dict[str, Any]:
    """Return `{ok, blocking_items: [{question_id, reason, message}]}` in presentation order."""
    question_list = list(questions)
    failures = evaluate_section(question_list, answers, visible_ids)
    items: List[Dict[str, Any]] = []
    for question in question_list:
        result = failures.get(question.id)
        if result is None:
            continue
        reason = MISSING_REQUIRED_ANSWER if result.violation == Violation.EMPTY_REQUIRED else str(result.violation)
        items.append({"question_id": question.id, "reason": reason, "message": result.message})
    ok = len(items) == 0
    logger.info("gating_verdict ok=%s blocking=%s", ok, [i["question_id"] for i in items])
    return {"ok": ok, "blocking_items": items}


__all__ = ["MISSING_REQUIRED_ANSWER", "evaluate_gating"]
