"""Functional tests for the assessment model: arena invariants and wire conversion."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from assessment_engine.models.assessment import (
    Assessment,
    AssessmentDocument,
    Question,
    Section,
    ValidationRules,
)


def test_document_round_trip_preserves_structure(sample_assessment):
    """Verifies that to_document/from_document keep ids, order and rules."""
    doc = sample_assessment.to_document()
    again = Assessment.from_document(doc)

    assert [s.id for s in again.sections] == ["s1", "s2"]
    assert [s.question_ids for s in again.sections] == [("q1", "q2"), ("q3", "q4")]
    assert again.questions["q3"].conditional.depends_on == "q1"
    assert again.questions["q2"].validation.max_length == 40
    assert again.title == sample_assessment.title


def test_wire_shape_is_camel_case(sample_assessment):
    """Verifies the wire document uses camelCase keys and 0-based order."""
    wire = sample_assessment.to_document().to_wire()

    assert wire["jobId"] == "job-1"
    assert wire["isPublished"] is False
    assert "timeLimit" not in wire  # None fields are omitted
    second = wire["sections"][1]
    assert second["order"] == 1
    assert second["questions"][0]["conditional"] == {"dependsOn": "q1", "showWhen": "Yes"}
    assert [q["order"] for q in second["questions"]] == [0, 1]


def test_from_document_rederives_order_from_sorted_position():
    """Verifies gaps or duplicates in incoming order values are normalised."""
    doc = AssessmentDocument.model_validate(
        {
            "id": "a-9",
            "jobId": "job-1",
            "title": "T",
            "sections": [
                {"id": "s-b", "title": "B", "order": 7, "questions": []},
                {
                    "id": "s-a",
                    "title": "A",
                    "order": 2,
                    "questions": [
                        {"id": "x", "type": "short-text", "text": "X", "order": 10},
                        {"id": "y", "type": "short-text", "text": "Y", "order": 3},
                    ],
                },
            ],
        }
    )
    assessment = Assessment.from_document(doc)

    assert [s.id for s in assessment.sections] == ["s-a", "s-b"]
    assert [s.order for s in assessment.sections] == [0, 1]
    assert assessment.sections[0].question_ids == ("y", "x")
    assert assessment.questions["x"].order == 1


def test_arena_rejects_question_placed_twice():
    q = Question(id="q", type="short-text", text="Q")
    with pytest.raises(ValidationError):
        Assessment(
            sections=(Section(id="s1", question_ids=("q",)), Section(id="s2", question_ids=("q",))),
            questions={"q": q},
        )


def test_arena_rejects_orphan_and_unknown_questions():
    q = Question(id="q", type="short-text", text="Q")
    with pytest.raises(ValidationError):
        Assessment(sections=(Section(id="s1", question_ids=()),), questions={"q": q})
    with pytest.raises(ValidationError):
        Assessment(sections=(Section(id="s1", question_ids=("missing",)),), questions={})


def test_validation_keys_must_match_question_type():
    """Verifies text rules on numeric questions (and vice versa) are rejected."""
    with pytest.raises(ValidationError):
        Question(id="q", type="numeric", validation=ValidationRules(min_length=2))
    with pytest.raises(ValidationError):
        Question(id="q", type="long-text", validation=ValidationRules(max=3))
    assert Question(id="q", type="numeric", validation=ValidationRules(min=1)).validation.min == 1


def test_unknown_question_type_is_rejected():
    with pytest.raises(ValidationError):
        Question(id="q", type="dropdown")


def test_lookups_follow_presentation_order(sample_assessment):
    assert sample_assessment.locate("q4") == (1, 1)
    assert sample_assessment.locate("nope") is None
    assert sample_assessment.precedes("q1", "q3")
    assert not sample_assessment.precedes("q3", "q1")
    assert [q.id for _s, q in sample_assessment.iter_questions()] == ["q1", "q2", "q3", "q4"]
    assert sample_assessment.question_at(1, 0).id == "q3"


def test_snapshots_are_immutable(sample_assessment):
    with pytest.raises(ValidationError):
        sample_assessment.title = "changed"
    renamed = sample_assessment.replace(title="Renamed")
    assert renamed.title == "Renamed"
    assert sample_assessment.title == "Driver screening"


def test_question_arena_is_read_only(sample_assessment):
    with pytest.raises(TypeError):
        sample_assessment.questions["q1"] = sample_assessment.questions["q2"]
    with pytest.raises(TypeError):
        del sample_assessment.questions["q1"]
    with pytest.raises(TypeError):
        Assessment().questions["x"] = sample_assessment.questions["q1"]

    copy = dict(sample_assessment.questions)
    copy.pop("q4")
    assert "q4" in sample_assessment.questions
