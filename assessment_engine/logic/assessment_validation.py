"""Whole-assessment validation run before an explicit save.

Produces an ordered list of authoring errors. Callers surface only the first
message; the full list is kept on `AuthoringValidationError` for diagnostics.
The conditional reference pass is also exposed separately so imported JSON can
be checked for self, forward and dangling references.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

from assessment_engine.errors import AuthoringValidationError
from assessment_engine.logic.answer_validation import check_options
from assessment_engine.models.assessment import CHOICE_TYPES, Assessment, Question
from assessment_engine.models.response import JobRef


class AuthoringErrorCode:
    MISSING_TITLE = "missing_title"
    MISSING_JOB = "missing_job"
    UNKNOWN_JOB = "unknown_job"
    NO_SECTIONS = "no_sections"
    SECTION_UNTITLED = "section_untitled"
    SECTION_EMPTY = "section_empty"
    QUESTION_TEXT_MISSING = "question_text_missing"
    INSUFFICIENT_OPTIONS = "insufficient_options"
    EMPTY_OPTION = "empty_option"
    SELF_REFERENCE = "conditional_self_reference"
    FORWARD_REFERENCE = "conditional_forward_reference"
    DANGLING_REFERENCE = "conditional_dangling_reference"


class AuthoringError(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    section_index: Optional[int] = None
    question_id: Optional[str] = None


def _conditional_error(assessment: Assessment, section_index: int, question: Question) -> Optional[AuthoringError]:
    rule = question.conditional
    if rule is None or not rule.depends_on:
        return None
    label = question.text or question.id
    if rule.depends_on == question.id:
        return AuthoringError(
            code=AuthoringErrorCode.SELF_REFERENCE,
            message=f'Question "{label}" cannot depend on itself',
            section_index=section_index,
            question_id=question.id,
        )
    if rule.depends_on not in assessment.questions:
        return AuthoringError(
            code=AuthoringErrorCode.DANGLING_REFERENCE,
            message=f'Question "{label}" depends on a question that no longer exists',
            section_index=section_index,
            question_id=question.id,
        )
    if not assessment.precedes(rule.depends_on, question.id):
        return AuthoringError(
            code=AuthoringErrorCode.FORWARD_REFERENCE,
            message=f'Question "{label}" can only depend on an earlier question',
            section_index=section_index,
            question_id=question.id,
        )
    return None


def validate_conditionals(assessment: Assessment) -> List[AuthoringError]:
    """Return reference errors for every conditional, in presentation order."""
    errors: List[AuthoringError] = []
    for s_idx, question in assessment.iter_questions():
        err = _conditional_error(assessment, s_idx, question)
        if err is not None:
            errors.append(err)
    return errors


def validate_assessment(assessment: Assessment, jobs: Optional[Iterable[JobRef]] = None) -> List[AuthoringError]:
    """Validate an assessment for saving and return ordered errors (empty when valid).

    Checks run in presentation order: assessment title, job, sections present,
    then per section its title and question count, then per question its
    text, options and conditional reference.
    """
    errors: List[AuthoringError] = []

    if not assessment.title.strip():
        errors.append(AuthoringError(code=AuthoringErrorCode.MISSING_TITLE, message="Assessment title is required"))

    if not assessment.job_id:
        errors.append(
            AuthoringError(code=AuthoringErrorCode.MISSING_JOB, message="Please select a job for this assessment")
        )
    elif jobs is not None and assessment.job_id not in {j.id for j in jobs}:
        errors.append(
            AuthoringError(code=AuthoringErrorCode.UNKNOWN_JOB, message="The selected job is not available")
        )

    if not assessment.sections:
        errors.append(AuthoringError(code=AuthoringErrorCode.NO_SECTIONS, message="At least one section is required"))
        return errors

    for s_idx, section in enumerate(assessment.sections):
        if not section.title.strip():
            errors.append(
                AuthoringError(
                    code=AuthoringErrorCode.SECTION_UNTITLED,
                    message=f"Section {s_idx + 1} must have a title",
                    section_index=s_idx,
                )
            )
        if not section.question_ids:
            errors.append(
                AuthoringError(
                    code=AuthoringErrorCode.SECTION_EMPTY,
                    message=f'Section "{section.title}" must have at least one question',
                    section_index=s_idx,
                )
            )
            continue

        for q_idx, question in enumerate(assessment.section_questions(s_idx)):
            if not question.text.strip():
                errors.append(
                    AuthoringError(
                        code=AuthoringErrorCode.QUESTION_TEXT_MISSING,
                        message=f'Question {q_idx + 1} in section "{section.title}" must have text',
                        section_index=s_idx,
                        question_id=question.id,
                    )
                )
            if question.type in CHOICE_TYPES:
                options = question.options or ()
                if not check_options(question).valid:
                    errors.append(
                        AuthoringError(
                            code=AuthoringErrorCode.INSUFFICIENT_OPTIONS,
                            message=f'Question "{question.text}" must have at least 2 options',
                            section_index=s_idx,
                            question_id=question.id,
                        )
                    )
                for o_idx, option in enumerate(options):
                    if not option.strip():
                        errors.append(
                            AuthoringError(
                                code=AuthoringErrorCode.EMPTY_OPTION,
                                message=f'Option {o_idx + 1} in question "{question.text}" cannot be empty',
                                section_index=s_idx,
                                question_id=question.id,
                            )
                        )
            cond_err = _conditional_error(assessment, s_idx, question)
            if cond_err is not None:
                errors.append(cond_err)

    return errors


def ensure_valid(assessment: Assessment, jobs: Optional[Iterable[JobRef]] = None) -> None:
    """Raise AuthoringValidationError when ``assessment`` is not savable."""
    errors = validate_assessment(assessment, jobs)
    if errors:
        raise AuthoringValidationError(errors)


__all__ = [
    "AuthoringErrorCode",
    "AuthoringError",
    "validate_conditionals",
    "validate_assessment",
    "ensure_valid",
]
