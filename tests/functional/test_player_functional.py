"""Functional tests for the candidate player: gating, visibility, drafts and submit."""

from __future__ import annotations

import pytest

from assessment_engine.errors import AnswerValidationError, AssessmentEngineError, StructureError, TransientRemoteError
from assessment_engine.logic import repository_assessments, repository_responses
from assessment_engine.logic.events import RESPONSE_SUBMITTED, LoggingNotifier, get_buffered_events
from assessment_engine.logic.player import AssessmentPlayer, Completed, SectionState
from assessment_engine.logic.remote_store import InProcessRemoteStore
from assessment_engine.models.assessment import Assessment


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def player(sample_assessment, draft_store, notifier, clock) -> AssessmentPlayer:
    p = AssessmentPlayer(sample_assessment, "cand-1", draft_store=draft_store, notifier=notifier, clock=clock)
    p.start()
    return p


def test_player_requires_sections():
    with pytest.raises(StructureError):
        AssessmentPlayer(Assessment(id="empty"), "cand-1")


def test_next_is_gated_on_visible_required_answers(player):
    with pytest.raises(AnswerValidationError) as exc:
        player.next()
    assert set(exc.value.failures) == {"q1", "q2"}

    player.record_answer("q1", "No")
    player.record_answer("q2", "A")
    with pytest.raises(AnswerValidationError) as exc:
        player.next()
    assert exc.value.failures["q2"].message == "Answer must be at least 2 characters"

    player.record_answer("q2", "Ada")
    assert player.next() == SectionState(index=1)
    assert player.progress == 100.0


def test_hidden_required_question_does_not_block(player):
    """Verifies a required question hidden by its condition never blocks advancing."""
    player.record_answer("q1", "No")
    player.record_answer("q2", "Ada")
    player.next()
    assert [q.id for q in player.visible_questions()] == ["q4"]
    assert player.blocking_items() == {"ok": True, "blocking_items": []}
    assert player.next() == Completed()


def test_answer_change_reports_visibility_delta(player):
    delta = player.record_answer("q1", "Yes")
    assert delta.now_visible == ["q3"]
    assert delta.now_hidden == []

    player.record_answer("q2", "Ada")
    player.next()
    player.record_answer("q3", "LIC-42")
    player.previous()
    delta = player.record_answer("q1", "No")
    assert delta.now_hidden == ["q3"]
    assert delta.suppressed_answers == ["q3"]
    assert player.answers["q3"] == "LIC-42"


def test_answers_are_coerced_to_strings(player):
    player.record_answer("q4", 7)
    player.record_answer("q1", ("Yes",))
    assert player.answers["q4"] == "7"
    assert player.answers["q1"] == ["Yes"]
    player.record_answer("q4", None)
    assert "q4" not in player.answers
    with pytest.raises(StructureError):
        player.record_answer("nope", "x")


def test_response_draft_is_debounced_and_restored(sample_assessment, draft_store, scheduler, notifier, clock):
    first = AssessmentPlayer(sample_assessment, "cand-1", draft_store=draft_store, notifier=notifier, clock=clock)
    first.start()
    first.record_answer("q1", "Yes")
    first.record_answer("q2", "Ada")
    first.next()
    first.record_answer("q3", "LIC-42")
    assert draft_store.load_response_draft("a-1") is None
    scheduler.advance(1.0)
    first.close()

    second = AssessmentPlayer(sample_assessment, "cand-1", draft_store=draft_store, notifier=notifier, clock=clock)
    state = second.start()

    assert state == SectionState(index=1)  # resumes at the latest answered section
    assert second.answers == {"q1": "Yes", "q2": "Ada", "q3": "LIC-42"}
    assert notifier.get_buffered()[-1]["message"].startswith("Progress Restored")


def test_completion_clears_response_draft(player, draft_store, scheduler, clock):
    player.record_answer("q1", "No")
    player.record_answer("q2", "Ada")
    scheduler.advance(1.0)
    assert draft_store.load_response_draft("a-1") is not None
    player.next()
    clock.advance(95)
    player.record_answer("q4", "3")

    assert player.next() == Completed()
    assert draft_store.load_response_draft("a-1") is None
    assert scheduler.active() == []
    assert player.submission.answers == {"q1": "No", "q2": "Ada", "q4": "3"}
    assert player.submission.elapsed_seconds == 95
    with pytest.raises(AssessmentEngineError):
        player.record_answer("q4", "4")


def test_time_remaining_uses_minutes_limit(sample_assessment, clock):
    p = AssessmentPlayer(sample_assessment.replace(time_limit=2), "cand-1", clock=clock)
    p.start()
    clock.advance(30)
    assert p.time_remaining_seconds() == 90
    assert AssessmentPlayer(sample_assessment, "cand-1", clock=clock).time_remaining_seconds() is None


@pytest.mark.anyio
async def test_submit_persists_response(sample_assessment, notifier, clock):
    doc, _ = repository_assessments.create_assessment("job-1", sample_assessment.to_document())
    canonical = Assessment.from_document(doc)
    p = AssessmentPlayer(canonical, "cand-7", notifier=notifier, clock=clock)
    p.start()
    p.record_answer("q1", "No")
    p.record_answer("q2", "Ada")
    p.next()
    p.next()

    record = await p.submit(InProcessRemoteStore())

    assert record.assessment_id == canonical.id
    stored = repository_responses.list_responses(canonical.id)
    assert [r.candidate_id for r in stored] == ["cand-7"]
    assert stored[0].responses == {"q1": "No", "q2": "Ada"}
    assert [e["type"] for e in get_buffered_events()] == [RESPONSE_SUBMITTED]
    assert notifier.get_buffered()[-1] == {"kind": "success", "message": "Assessment submitted successfully"}


@pytest.mark.anyio
async def test_submit_failure_is_reported_and_reraised(player, notifier, mocker):
    player.record_answer("q1", "No")
    player.record_answer("q2", "Ada")
    player.next()
    player.next()
    remote = InProcessRemoteStore()
    mocker.patch.object(remote, "submit_response", side_effect=TransientRemoteError("down", kind="service_unavailable"))

    with pytest.raises(TransientRemoteError):
        await player.submit(remote)
    assert notifier.get_buffered()[-1]["kind"] == "error"


def test_restart_discards_answers_and_draft(player, draft_store):
    player.record_answer("q1", "Yes")
    draft_store.flush("response:a-1")
    assert player.restart() == SectionState(index=0)
    assert player.answers == {}
    assert draft_store.load_response_draft("a-1") is None
