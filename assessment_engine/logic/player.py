"""Runtime player for candidates taking an assessment.

The player walks the sections of an `Assessment` one at a time, recomputes
visibility synchronously on every answer, gates advancing on the answer rules
of visible questions, and keeps a debounced response draft so progress
survives a reload.

States: ``SectionState(index)`` for each section, then ``Completed``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from assessment_engine.errors import AnswerValidationError, AssessmentEngineError, RemoteStoreError, StructureError
from assessment_engine.logic.answer_validation import evaluate_section, is_empty_answer
from assessment_engine.logic.draft_store import DraftStore, response_key
from assessment_engine.logic.events import (
    NOTIFY_ERROR,
    NOTIFY_INFO,
    NOTIFY_SUCCESS,
    RESPONSE_SUBMITTED,
    LoggingNotifier,
    Notifier,
    publish,
)
from assessment_engine.logic.gating import evaluate_gating
from assessment_engine.logic.remote_store import RemoteStore
from assessment_engine.logic.visibility_delta import VisibilityDelta, compute_visibility_delta
from assessment_engine.logic.visibility_rules import compute_visible_set, filter_visible_questions
from assessment_engine.models.assessment import Assessment, Question, utcnow
from assessment_engine.models.response import ResponseRecord, Submission

logger = logging.getLogger(__name__)


class SectionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["section"] = "section"
    index: int


class Completed(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["completed"] = "completed"


PlayerState = Union[SectionState, Completed]


class AssessmentPlayer:
    def __init__(
        self,
        assessment: Assessment,
        candidate_id: str,
        draft_store: Optional[DraftStore] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not assessment.sections:
            raise StructureError("assessment has no sections to play")
        self.assessment = assessment
        self.candidate_id = candidate_id
        self._drafts = draft_store
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock
        self._answers: Dict[str, Any] = {}
        self._state: PlayerState = SectionState(index=0)
        self._started_at = clock()
        self.submission: Optional[Submission] = None

    # ----- state -----

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def answers(self) -> Dict[str, Any]:
        return dict(self._answers)

    @property
    def section_count(self) -> int:
        return len(self.assessment.sections)

    def _current_index(self) -> int:
        if not isinstance(self._state, SectionState):
            raise AssessmentEngineError("the assessment is already completed")
        return self._state.index

    @property
    def progress(self) -> float:
        if isinstance(self._state, Completed):
            return 100.0
        return (self._state.index + 1) / self.section_count * 100

    def elapsed_seconds(self) -> int:
        return max(0, int((self._clock() - self._started_at).total_seconds()))

    def time_remaining_seconds(self) -> Optional[int]:
        """Seconds left under the assessment's time limit (minutes), or None without a limit."""
        if self.assessment.time_limit is None:
            return None
        return max(0, self.assessment.time_limit * 60 - self.elapsed_seconds())

    # ----- session -----

    def start(self) -> PlayerState:
        """Begin the session, restoring a response draft when one exists.

        Restored sessions resume at the latest section holding an answer.
        """
        self._started_at = self._clock()
        draft = self._drafts.load_response_draft(self.assessment.id) if self._drafts is not None else None
        if draft is None or not draft.answers:
            self._answers = {}
            self._state = SectionState(index=0)
            return self._state

        self._answers = dict(draft.answers)
        resume_at = 0
        for s_idx in range(self.section_count - 1, -1, -1):
            if any(qid in self._answers for qid in self.assessment.sections[s_idx].question_ids):
                resume_at = s_idx
                break
        self._state = SectionState(index=resume_at)
        logger.info("player.progress_restored id=%s section=%s answers=%s", self.assessment.id, resume_at, len(self._answers))
        self._notifier.notify(NOTIFY_INFO, "Progress Restored: your previous answers have been restored.")
        return self._state

    def _schedule_draft(self) -> None:
        if self._drafts is not None:
            self._drafts.schedule_response_draft(self.assessment.id, self._answers)

    def record_answer(self, question_id: str, value: Any) -> VisibilityDelta:
        """Store an answer and return the visibility change it caused downstream."""
        index = self._current_index()
        if question_id not in self.assessment.questions:
            raise StructureError(f"question {question_id} is not part of this assessment")

        pre = compute_visible_set(self.assessment, self._answers, start_section=index)
        if value is None:
            self._answers.pop(question_id, None)
        else:
            # answers are strings or lists of strings, as entered
            self._answers[question_id] = (
                [str(v) for v in value] if isinstance(value, (list, tuple, set)) else str(value)
            )
        post = compute_visible_set(self.assessment, self._answers, start_section=index)

        delta = compute_visibility_delta(pre, post, lambda qid: not is_empty_answer(self._answers.get(qid)))
        if delta.now_visible or delta.now_hidden:
            logger.info(
                "player.visibility_changed question_id=%s now_visible=%s now_hidden=%s",
                question_id,
                delta.now_visible,
                delta.now_hidden,
            )
        self._schedule_draft()
        return delta

    def visible_questions(self) -> List[Question]:
        index = self._current_index()
        return filter_visible_questions(self.assessment.section_questions(index), self._answers)

    def blocking_items(self) -> Dict[str, Any]:
        index = self._current_index()
        questions = self.assessment.section_questions(index)
        visible = {q.id for q in filter_visible_questions(questions, self._answers)}
        return evaluate_gating(questions, self._answers, visible)

    def next(self) -> PlayerState:
        """Advance past the current section; raises AnswerValidationError when it is not complete."""
        index = self._current_index()
        questions = self.assessment.section_questions(index)
        visible = {q.id for q in filter_visible_questions(questions, self._answers)}
        failures = evaluate_section(questions, self._answers, visible)
        if failures:
            raise AnswerValidationError(failures)

        if index + 1 < self.section_count:
            self._state = SectionState(index=index + 1)
            return self._state

        self.submission = Submission(
            assessment_id=self.assessment.id,
            candidate_id=self.candidate_id,
            answers=dict(self._answers),
            elapsed_seconds=self.elapsed_seconds(),
        )
        if self._drafts is not None:
            self._drafts.cancel_pending(response_key(self.assessment.id))
            self._drafts.clear_response_draft(self.assessment.id)
        self._state = Completed()
        logger.info("player.completed id=%s candidate_id=%s", self.assessment.id, self.candidate_id)
        return self._state

    def previous(self) -> PlayerState:
        if isinstance(self._state, SectionState) and self._state.index > 0:
            self._state = SectionState(index=self._state.index - 1)
        return self._state

    async def submit(self, remote: RemoteStore) -> ResponseRecord:
        """Send the completed submission to the canonical store."""
        if self.submission is None:
            raise AssessmentEngineError("the assessment must be completed before it is submitted")
        sub = self.submission
        try:
            record = await remote.submit_response(
                sub.assessment_id,
                sub.candidate_id,
                sub.answers,
                sub.elapsed_seconds,
                job_id=self.assessment.job_id,
            )
        except RemoteStoreError as exc:
            logger.error("player.submit_failed id=%s error=%s", sub.assessment_id, exc)
            self._notifier.notify(NOTIFY_ERROR, "Failed to submit assessment. Please try again.")
            raise
        publish(RESPONSE_SUBMITTED, {"response_id": record.id, "assessment_id": sub.assessment_id})
        self._notifier.notify(NOTIFY_SUCCESS, "Assessment submitted successfully")
        return record

    def close(self, discard: bool = False) -> None:
        """End the session; pending draft writes are cancelled.

        The persisted response draft is kept unless ``discard`` is True.
        """
        if self._drafts is None:
            return
        self._drafts.cancel_pending(response_key(self.assessment.id))
        if discard:
            self._drafts.clear_response_draft(self.assessment.id)

    def restart(self) -> PlayerState:
        """Drop all answers and the response draft and return to the first section."""
        self._answers = {}
        self.submission = None
        if self._drafts is not None:
            self._drafts.cancel_pending(response_key(self.assessment.id))
            self._drafts.clear_response_draft(self.assessment.id)
        self._started_at = self._clock()
        self._state = SectionState(index=0)
        return self._state


__all__ = ["SectionState", "Completed", "PlayerState", "AssessmentPlayer"]
