"""Per-question answer validation.

Pure evaluation of a single answer against its question's rules. Authoring
time option checks live here too and the whole-assessment validator reuses
them, so there is one definition of "enough options".
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from assessment_engine.models.assessment import CHOICE_TYPES, TEXT_TYPES, Question, QuestionType


class Violation:
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    BELOW_MIN = "below_min"
    ABOVE_MAX = "above_max"
    EMPTY_REQUIRED = "empty_required"
    INSUFFICIENT_OPTIONS = "insufficient_options"
    NOT_NUMERIC = "not_numeric"


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    violation: Optional[str] = None
    message: Optional[str] = None


VALID = ValidationResult(valid=True)


def _fail(violation: str, message: str) -> ValidationResult:
    return ValidationResult(valid=False, violation=violation, message=message)


def is_empty_answer(answer: Any) -> bool:
    """True for None, blank strings and empty lists."""
    if answer is None:
        return True
    if isinstance(answer, str):
        return answer.strip() == ""
    if isinstance(answer, (list, tuple, set)):
        return len(answer) == 0
    return False


def _parse_number(answer: Any) -> Optional[float]:
    if isinstance(answer, bool):
        return None
    if isinstance(answer, (int, float)):
        value = float(answer)
    else:
        try:
            value = float(str(answer).strip())
        except ValueError:
            return None
    return value if math.isfinite(value) else None


def _fmt(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)


def evaluate(question: Question, answer: Any) -> ValidationResult:
    """Evaluate ``answer`` against ``question``'s required flag and rules."""
    if is_empty_answer(answer):
        if question.required:
            return _fail(Violation.EMPTY_REQUIRED, "This question is required")
        return VALID

    rules = question.validation
    if question.type in TEXT_TYPES:
        if rules is None:
            return VALID
        length = len(answer) if isinstance(answer, str) else len(str(answer))
        if rules.min_length is not None and length < rules.min_length:
            return _fail(Violation.TOO_SHORT, f"Answer must be at least {rules.min_length} characters")
        if rules.max_length is not None and length > rules.max_length:
            return _fail(Violation.TOO_LONG, f"Answer must be at most {rules.max_length} characters")
        return VALID

    if question.type == QuestionType.NUMERIC:
        value = _parse_number(answer)
        if value is None:
            return _fail(Violation.NOT_NUMERIC, "Answer must be a number")
        if rules is not None:
            if rules.min is not None and value < rules.min:
                return _fail(Violation.BELOW_MIN, f"Answer must be at least {_fmt(rules.min)}")
            if rules.max is not None and value > rules.max:
                return _fail(Violation.ABOVE_MAX, f"Answer must be at most {_fmt(rules.max)}")
        return VALID

    return VALID


def check_options(question: Question) -> ValidationResult:
    """Authoring-time check: choice questions need two or more non-empty options."""
    if question.type not in CHOICE_TYPES:
        return VALID
    filled = [opt for opt in (question.options or ()) if opt.strip()]
    if len(filled) < 2:
        return _fail(Violation.INSUFFICIENT_OPTIONS, "Choice questions need at least 2 options")
    return VALID


def evaluate_section(
    questions: Iterable[Question],
    answers: Mapping[str, Any],
    visible_ids: Iterable[str],
) -> Dict[str, ValidationResult]:
    """Return failures for the visible questions only, keyed by question id.

    Hidden questions are exempt even when required.
    """
    visible = set(visible_ids)
    failures: Dict[str, ValidationResult] = {}
    for question in questions:
        if question.id not in visible:
            continue
        result = evaluate(question, answers.get(question.id))
        if not result.valid:
            failures[question.id] = result
    return failures


__all__ = [
    "Violation",
    "ValidationResult",
    "is_empty_answer",
    "evaluate",
    "check_options",
    "evaluate_section",
]
