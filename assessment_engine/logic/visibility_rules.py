"""Visibility rule evaluation helpers for conditional questions.

Centralizes the equality and membership checks that decide whether a question
is shown given the current answers, so the player and the gating verdict never
drift apart. Visibility is always recomputed from answers; nothing is cached.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping
import logging

from assessment_engine.models.assessment import Assessment, Question

logger = logging.getLogger(__name__)


def answer_matches(answer: Any, show_when: str) -> bool:
    """Return True if ``answer`` satisfies ``show_when``.

    List answers match by membership; anything else by strict string equality.
    An absent answer never matches.
    """
    if answer is None:
        return False
    if isinstance(answer, (list, tuple, set, frozenset)):
        return show_when in answer
    return answer == show_when


def is_visible(question: Question, answers: Mapping[str, Any]) -> bool:
    """Return True if ``question`` should be shown given ``answers``.

    - No conditional: always visible.
    - Incomplete conditional (missing prerequisite or expected value): visible,
      the rule is still being authored.
    - Otherwise visible only when the prerequisite answer matches.
    """
    rule = question.conditional
    if rule is None or not rule.is_complete():
        return True
    return answer_matches(answers.get(rule.depends_on), rule.show_when)


def compute_visible_set(
    assessment: Assessment,
    answers: Mapping[str, Any],
    start_section: int = 0,
) -> set[str]:
    """Compute visible question ids for every section from ``start_section`` on."""
    visible: set[str] = set()
    for s_idx, question in assessment.iter_questions():
        if s_idx < start_section:
            continue
        if is_visible(question, answers):
            visible.add(question.id)
    return visible


def filter_visible_questions(questions: Iterable[Question], answers: Mapping[str, Any]) -> list[Question]:
    """Return the visible subset of ``questions``, preserving order."""
    return [q for q in questions if is_visible(q, answers)]


__all__ = [
    "answer_matches",
    "is_visible",
    "compute_visible_set",
    "filter_visible_questions",
]
