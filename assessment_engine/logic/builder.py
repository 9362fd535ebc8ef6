"""Authoring controller for assessments.

`AssessmentBuilder` owns the current immutable `Assessment` snapshot. Every
authoring operation produces a new snapshot, stamps `updated_at` and hands the
snapshot to subscribers (typically the draft store's debounced author-draft
write). Saving runs the whole-assessment validator first and only then
delegates to the reconciliation service.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from assessment_engine.errors import (
    AssessmentEngineError,
    AuthoringValidationError,
    ConditionalReferenceError,
    StructureError,
)
from assessment_engine.logic.assessment_validation import validate_assessment
from assessment_engine.logic.draft_store import DraftStore
from assessment_engine.logic.events import NOTIFY_ERROR, NOTIFY_INFO, LoggingNotifier, Notifier
from assessment_engine.logic.order_sequences import array_move, insert_at, remove_at
from assessment_engine.logic.reconciliation import ReconciliationService, SaveResult
from assessment_engine.models.assessment import (
    ALL_TYPES,
    CHOICE_TYPES,
    TEXT_TYPES,
    Assessment,
    ConditionalRule,
    Question,
    QuestionType,
    Section,
    ValidationRules,
    utcnow,
)
from assessment_engine.models.response import JobRef

logger = logging.getLogger(__name__)

ASSESSMENT_PATCH_KEYS = frozenset({"title", "description", "job_id", "time_limit", "is_published"})
SECTION_PATCH_KEYS = frozenset({"title", "description"})
QUESTION_PATCH_KEYS = frozenset(
    {"text", "description", "required", "type", "options", "validation", "conditional"}
)

Listener = Callable[[Assessment], None]


def _new_id() -> str:
    return str(uuid.uuid4())


def _default_options(count: int = 2) -> tuple[str, ...]:
    return tuple(f"Option {i + 1}" for i in range(count))


def _rules_for_type(question_type: str, rules: Optional[ValidationRules]) -> Optional[ValidationRules]:
    """Keep only the validation keys that apply to ``question_type``."""
    if rules is None:
        return None
    if question_type in TEXT_TYPES:
        kept = ValidationRules(min_length=rules.min_length, max_length=rules.max_length)
    elif question_type == QuestionType.NUMERIC:
        kept = ValidationRules(min=rules.min, max=rules.max)
    else:
        return None
    return None if kept.is_empty() else kept


class AssessmentBuilder:
    def __init__(
        self,
        assessment: Optional[Assessment] = None,
        *,
        job_id: str = "",
        jobs: Optional[Iterable[JobRef]] = None,
        reconciliation: Optional[ReconciliationService] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self.jobs: List[JobRef] = list(jobs or [])
        self._reconciliation = reconciliation
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock
        self._new_id = id_factory
        self._listeners: List[Listener] = []
        if assessment is None:
            now = clock()
            default_job = job_id or (self.jobs[0].id if self.jobs else "")
            assessment = Assessment(id=id_factory(), job_id=default_job, created_at=now, updated_at=now)
        self._snapshot = assessment

    @property
    def assessment(self) -> Assessment:
        return self._snapshot

    # ----- listeners -----

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register ``callback`` for every new snapshot; returns an unsubscribe callable."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _commit(self, **changes: Any) -> Assessment:
        changes["updated_at"] = self._clock()
        snapshot = self._snapshot.replace(**changes)
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    # ----- addressing -----

    def _section(self, section_index: int) -> Section:
        if section_index < 0 or section_index >= len(self._snapshot.sections):
            raise StructureError(f"section {section_index} does not exist")
        return self._snapshot.sections[section_index]

    def _question(self, section_index: int, question_index: int) -> Question:
        section = self._section(section_index)
        if question_index < 0 or question_index >= len(section.question_ids):
            raise StructureError(f"question {question_index} does not exist in section {section_index}")
        return self._snapshot.questions[section.question_ids[question_index]]

    def _with_section(self, section_index: int, section: Section) -> tuple[Section, ...]:
        sections = list(self._snapshot.sections)
        sections[section_index] = section
        return tuple(sections)

    def _reordered(self, sections: Iterable[Section], questions: Mapping[str, Question]) -> Dict[str, Any]:
        """Re-derive contiguous section and question orders from position."""
        out_sections = tuple(s.model_copy(update={"order": i}) for i, s in enumerate(sections))
        out_questions = dict(questions)
        for section in out_sections:
            for pos, qid in enumerate(section.question_ids):
                if out_questions[qid].order != pos:
                    out_questions[qid] = out_questions[qid].model_copy(update={"order": pos})
        return {"sections": out_sections, "questions": out_questions}

    # ----- assessment -----

    def update_assessment(self, patch: Mapping[str, Any]) -> Assessment:
        unknown = set(patch) - ASSESSMENT_PATCH_KEYS
        if unknown:
            raise StructureError(f"cannot update assessment fields {sorted(unknown)}")
        return self._commit(**dict(patch))

    # ----- sections -----

    def add_section(self) -> Assessment:
        count = len(self._snapshot.sections)
        section = Section(id=self._new_id(), title=f"Section {count + 1}", description="", order=count)
        return self._commit(sections=self._snapshot.sections + (section,))

    def update_section(self, section_index: int, patch: Mapping[str, Any]) -> Assessment:
        section = self._section(section_index)
        unknown = set(patch) - SECTION_PATCH_KEYS
        if unknown:
            raise StructureError(f"cannot update section fields {sorted(unknown)}")
        return self._commit(sections=self._with_section(section_index, section.model_copy(update=dict(patch))))

    def delete_section(self, section_index: int) -> Assessment:
        section = self._section(section_index)
        sections, _removed = remove_at(self._snapshot.sections, section_index)
        removed_ids = set(section.question_ids)
        questions = {qid: q for qid, q in self._snapshot.questions.items() if qid not in removed_ids}
        questions = self._clear_references(questions, removed_ids)
        return self._commit(**self._reordered(sections, questions))

    # ----- questions -----

    def add_question(self, section_index: int, question_type: str) -> Assessment:
        section = self._section(section_index)
        if question_type not in ALL_TYPES:
            raise StructureError(f"unknown question type {question_type!r}")
        question = Question(
            id=self._new_id(),
            type=question_type,
            text="New Question",
            required=False,
            order=len(section.question_ids),
            options=_default_options() if question_type in CHOICE_TYPES else None,
        )
        updated = section.model_copy(update={"question_ids": section.question_ids + (question.id,)})
        questions = dict(self._snapshot.questions)
        questions[question.id] = question
        return self._commit(sections=self._with_section(section_index, updated), questions=questions)

    def update_question(self, section_index: int, question_index: int, patch: Mapping[str, Any]) -> Assessment:
        """Apply ``patch`` to a question.

        ``id`` and ``order`` are immutable. Changing ``type`` drops options and
        validation keys that no longer apply and seeds default options for
        choice types. A ``conditional`` entry is reference-checked like
        set_conditional; None clears it.
        """
        question = self._question(section_index, question_index)
        if "id" in patch or "order" in patch:
            raise StructureError("question id and order cannot be patched")
        unknown = set(patch) - QUESTION_PATCH_KEYS
        if unknown:
            raise StructureError(f"cannot update question fields {sorted(unknown)}")

        data = question.model_dump()
        new_type = patch.get("type", question.type)
        for key in ("text", "description", "required"):
            if key in patch:
                data[key] = patch[key]
        data["type"] = new_type

        if "options" in patch and patch["options"] is not None:
            if new_type not in CHOICE_TYPES:
                raise StructureError(f"{new_type} questions do not take options")
            data["options"] = tuple(str(o) for o in patch["options"])
        if new_type in CHOICE_TYPES:
            if not data.get("options"):
                data["options"] = _default_options()
        else:
            data["options"] = None

        if "validation" in patch:
            raw = patch["validation"]
            rules = None if raw is None else (
                raw if isinstance(raw, ValidationRules) else ValidationRules.model_validate(raw)
            )
            if rules is not None and _rules_for_type(new_type, rules) != (None if rules.is_empty() else rules):
                raise StructureError(f"validation keys {rules.model_dump(exclude_none=True)} do not apply to {new_type}")
            data["validation"] = None if rules is None or rules.is_empty() else rules
        else:
            data["validation"] = _rules_for_type(new_type, question.validation)

        rule = question.conditional
        if "conditional" in patch:
            raw_rule = patch["conditional"]
            if raw_rule is None:
                rule = None
            else:
                rule = raw_rule if isinstance(raw_rule, ConditionalRule) else ConditionalRule.model_validate(raw_rule)
                self._check_reference(question.id, rule.depends_on)
        data["conditional"] = rule

        updated = Question.model_validate(data)
        questions = dict(self._snapshot.questions)
        questions[question.id] = updated
        return self._commit(questions=questions)

    def delete_question(self, section_index: int, question_index: int) -> Assessment:
        section = self._section(section_index)
        question = self._question(section_index, question_index)
        remaining, _removed = remove_at(section.question_ids, question_index)
        sections = self._with_section(section_index, section.model_copy(update={"question_ids": tuple(remaining)}))
        questions = {qid: q for qid, q in self._snapshot.questions.items() if qid != question.id}
        questions = self._clear_references(questions, {question.id})
        return self._commit(**self._reordered(sections, questions))

    def _clear_references(self, questions: Dict[str, Question], removed_ids: set[str]) -> Dict[str, Question]:
        out = dict(questions)
        for qid, q in questions.items():
            if q.conditional is not None and q.conditional.depends_on in removed_ids:
                logger.info("builder.conditional_cleared question_id=%s depends_on=%s", qid, q.conditional.depends_on)
                out[qid] = q.model_copy(update={"conditional": None})
        return out

    # ----- options -----

    def _replace_options(self, section_index: int, question_index: int, options: Iterable[str]) -> Assessment:
        question = self._question(section_index, question_index)
        if question.type not in CHOICE_TYPES:
            raise StructureError(f"{question.type} questions do not take options")
        questions = dict(self._snapshot.questions)
        questions[question.id] = question.model_copy(update={"options": tuple(options)})
        return self._commit(questions=questions)

    def add_option(self, section_index: int, question_index: int) -> Assessment:
        options = list(self._question(section_index, question_index).options or ())
        options.append(f"Option {len(options) + 1}")
        return self._replace_options(section_index, question_index, options)

    def update_option(self, section_index: int, question_index: int, option_index: int, text: str) -> Assessment:
        options = list(self._question(section_index, question_index).options or ())
        if option_index < 0 or option_index >= len(options):
            raise StructureError(f"option {option_index} does not exist")
        options[option_index] = text
        return self._replace_options(section_index, question_index, options)

    def remove_option(self, section_index: int, question_index: int, option_index: int) -> Assessment:
        options = list(self._question(section_index, question_index).options or ())
        if option_index < 0 or option_index >= len(options):
            raise StructureError(f"option {option_index} does not exist")
        del options[option_index]
        return self._replace_options(section_index, question_index, options)

    # ----- reordering -----

    def move_question(self, from_section: int, from_index: int, to_section: int, to_index: int) -> Assessment:
        """Move a question within a section or into another section.

        ``to_index`` is clamped into the target section. Conditionals that the
        move turns into forward references are cleared.
        """
        source = self._section(from_section)
        self._question(from_section, from_index)
        target = self._section(to_section)
        if from_section == to_section:
            moved = array_move(source.question_ids, from_index, to_index)
            sections = self._with_section(from_section, source.model_copy(update={"question_ids": tuple(moved)}))
        else:
            remaining, qid = remove_at(source.question_ids, from_index)
            inserted = insert_at(target.question_ids, qid, to_index)
            sections_list = list(self._snapshot.sections)
            sections_list[from_section] = source.model_copy(update={"question_ids": tuple(remaining)})
            sections_list[to_section] = target.model_copy(update={"question_ids": tuple(inserted)})
            sections = tuple(sections_list)

        staged = self._snapshot.replace(**self._reordered(sections, self._snapshot.questions))
        questions = dict(staged.questions)
        for _s_idx, q in staged.iter_questions():
            rule = q.conditional
            if rule is None or not rule.depends_on or rule.depends_on not in questions:
                continue
            if not staged.precedes(rule.depends_on, q.id):
                questions[q.id] = q.model_copy(update={"conditional": None})
                logger.info("builder.conditional_cleared question_id=%s depends_on=%s", q.id, rule.depends_on)
                self._notifier.notify(
                    NOTIFY_INFO, f'Condition on "{q.text}" was removed because its question now comes later'
                )
        return self._commit(sections=staged.sections, questions=questions)

    # ----- conditionals -----

    def conditional_candidates(self, section_index: int, question_index: int) -> List[Question]:
        """Questions that ``(section_index, question_index)`` may depend on: every earlier one."""
        target = self._question(section_index, question_index)
        candidates: List[Question] = []
        for _s_idx, q in self._snapshot.iter_questions():
            if q.id == target.id:
                break
            candidates.append(q)
        return candidates

    def _check_reference(self, question_id: str, depends_on: str) -> None:
        if not depends_on:
            return
        if depends_on == question_id:
            raise ConditionalReferenceError("a question cannot depend on itself")
        if depends_on not in self._snapshot.questions:
            raise ConditionalReferenceError(f"question {depends_on} does not exist")
        if not self._snapshot.precedes(depends_on, question_id):
            raise ConditionalReferenceError("a question can only depend on an earlier question")

    def set_conditional(self, section_index: int, question_index: int, depends_on: str, show_when: str) -> Assessment:
        """Attach a conditional; an empty ``depends_on`` or ``show_when`` stores an incomplete rule."""
        question = self._question(section_index, question_index)
        self._check_reference(question.id, depends_on)
        questions = dict(self._snapshot.questions)
        questions[question.id] = question.model_copy(
            update={"conditional": ConditionalRule(depends_on=depends_on, show_when=show_when)}
        )
        return self._commit(questions=questions)

    def clear_conditional(self, section_index: int, question_index: int) -> Assessment:
        question = self._question(section_index, question_index)
        questions = dict(self._snapshot.questions)
        questions[question.id] = question.model_copy(update={"conditional": None})
        return self._commit(questions=questions)

    # ----- session -----

    def restore(self, draft_store: DraftStore, assessment: Optional[Assessment] = None) -> bool:
        """Start a session, preferring a stored author draft over ``assessment``.

        Returns True when a draft replaced the snapshot.
        """
        base = assessment or self._snapshot
        self._snapshot = base
        if not base.id:
            return False
        draft = draft_store.load_author_draft(base.id)
        if draft is None:
            return False
        self._snapshot = draft.snapshot
        logger.info("builder.draft_restored id=%s saved_at=%s", base.id, draft.saved_at.isoformat())
        self._notifier.notify(NOTIFY_INFO, "Draft Restored: your unsaved changes have been restored from local storage.")
        return True

    async def save(self) -> SaveResult:
        """Validate and persist the current snapshot.

        Raises AuthoringValidationError (remote store untouched) when the
        assessment is not savable; reconciliation errors propagate unchanged.
        """
        snapshot = self._snapshot
        errors = validate_assessment(snapshot, self.jobs or None)
        if errors:
            self._notifier.notify(NOTIFY_ERROR, errors[0].message)
            raise AuthoringValidationError(errors)
        if self._reconciliation is None:
            raise AssessmentEngineError("no reconciliation service configured for this builder")
        result = await self._reconciliation.save(snapshot.job_id, snapshot)
        self._snapshot = result.record
        return result


__all__ = [
    "ASSESSMENT_PATCH_KEYS",
    "SECTION_PATCH_KEYS",
    "QUESTION_PATCH_KEYS",
    "AssessmentBuilder",
]
