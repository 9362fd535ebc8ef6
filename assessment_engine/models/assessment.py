"""Assessment model: wire documents and the immutable arena shape.

Two shapes are kept side by side:

- `AssessmentDocument` is the nested camelCase JSON exchanged with the
  canonical store and persisted inside drafts.
- `Assessment` is the immutable domain snapshot used by the builder and the
  player. Sections hold ordered question ids; questions live in a single
  id-keyed mapping so moves between sections never copy question bodies.

`Assessment.to_document()` and `Assessment.from_document()` convert between
the two. Order fields are always re-derived from position.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Iterator, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel


class QuestionType:
    SINGLE_CHOICE = "single-choice"
    MULTI_CHOICE = "multi-choice"
    SHORT_TEXT = "short-text"
    LONG_TEXT = "long-text"
    NUMERIC = "numeric"
    FILE_UPLOAD = "file-upload"


QuestionTypeName = Literal[
    "single-choice",
    "multi-choice",
    "short-text",
    "long-text",
    "numeric",
    "file-upload",
]

CHOICE_TYPES = frozenset({QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE})
TEXT_TYPES = frozenset({QuestionType.SHORT_TEXT, QuestionType.LONG_TEXT})
ALL_TYPES = frozenset(CHOICE_TYPES | TEXT_TYPES | {QuestionType.NUMERIC, QuestionType.FILE_UPLOAD})

# question_id -> single string answer or list of selected options
AnswerMap = Dict[str, object]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True)
_FROZEN_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ValidationRules(BaseModel):
    model_config = _FROZEN_WIRE

    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    min: Optional[float] = None
    max: Optional[float] = None

    def is_empty(self) -> bool:
        return all(v is None for v in (self.min_length, self.max_length, self.min, self.max))


class ConditionalRule(BaseModel):
    """Show the owning question when `depends_on` was answered with `show_when`."""

    model_config = _FROZEN_WIRE

    depends_on: str = ""
    show_when: str = ""

    def is_complete(self) -> bool:
        return bool(self.depends_on) and bool(self.show_when)


class Question(BaseModel):
    model_config = _FROZEN_WIRE

    id: str
    type: QuestionTypeName
    text: str = ""
    description: Optional[str] = None
    required: bool = False
    order: int = 0
    options: Optional[Tuple[str, ...]] = None
    validation: Optional[ValidationRules] = None
    conditional: Optional[ConditionalRule] = None

    @model_validator(mode="after")
    def _validation_keys_match_type(self) -> "Question":
        rules = self.validation
        if rules is None:
            return self
        if (rules.min_length is not None or rules.max_length is not None) and self.type not in TEXT_TYPES:
            raise ValueError(f"minLength/maxLength apply only to text questions, not {self.type}")
        if (rules.min is not None or rules.max is not None) and self.type != QuestionType.NUMERIC:
            raise ValueError(f"min/max apply only to numeric questions, not {self.type}")
        return self

    @property
    def is_choice(self) -> bool:
        return self.type in CHOICE_TYPES


class SectionDocument(BaseModel):
    model_config = _WIRE

    id: str
    title: str = ""
    description: Optional[str] = None
    questions: List[Question] = Field(default_factory=list)
    order: int = 0


class AssessmentDocument(BaseModel):
    """Nested wire shape of an assessment (camelCase on the wire)."""

    model_config = _WIRE

    id: str = ""
    job_id: str = ""
    title: str = ""
    description: str = ""
    sections: List[SectionDocument] = Field(default_factory=list)
    time_limit: Optional[int] = Field(default=None, ge=0)
    is_published: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Section(BaseModel):
    model_config = _FROZEN_WIRE

    id: str
    title: str = ""
    description: Optional[str] = None
    order: int = 0
    question_ids: Tuple[str, ...] = ()


class Assessment(BaseModel):
    """Immutable assessment snapshot in arena form."""

    model_config = _FROZEN_WIRE

    id: str = ""
    job_id: str = ""
    title: str = ""
    description: str = ""
    time_limit: Optional[int] = Field(default=None, ge=0)
    is_published: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    sections: Tuple[Section, ...] = ()
    questions: Mapping[str, Question] = Field(default_factory=dict, validate_default=True)

    @field_validator("questions", mode="after")
    @classmethod
    def _read_only_questions(cls, value: Mapping[str, Question]) -> Mapping[str, Question]:
        return MappingProxyType(dict(value))

    @field_serializer("questions")
    def _dump_questions(self, value: Mapping[str, Question]) -> Dict[str, Question]:
        return dict(value)

    @model_validator(mode="after")
    def _arena_is_consistent(self) -> "Assessment":
        seen: set[str] = set()
        for section in self.sections:
            for qid in section.question_ids:
                if qid in seen:
                    raise ValueError(f"question {qid} is placed more than once")
                if qid not in self.questions:
                    raise ValueError(f"section {section.id} references unknown question {qid}")
                seen.add(qid)
        for key, question in self.questions.items():
            if key != question.id:
                raise ValueError(f"question keyed {key} carries id {question.id}")
            if key not in seen:
                raise ValueError(f"question {key} is not placed in any section")
        return self

    # ----- lookups -----

    def section_questions(self, section_index: int) -> List[Question]:
        section = self.sections[section_index]
        return [self.questions[qid] for qid in section.question_ids]

    def question_at(self, section_index: int, question_index: int) -> Question:
        return self.questions[self.sections[section_index].question_ids[question_index]]

    def locate(self, question_id: str) -> Optional[Tuple[int, int]]:
        """Return `(section_index, position)` of a question, or None."""
        for s_idx, section in enumerate(self.sections):
            if question_id in section.question_ids:
                return s_idx, section.question_ids.index(question_id)
        return None

    def iter_questions(self) -> Iterator[Tuple[int, Question]]:
        """Yield `(section_index, question)` in presentation order."""
        for s_idx, section in enumerate(self.sections):
            for qid in section.question_ids:
                yield s_idx, self.questions[qid]

    def precedes(self, earlier_id: str, later_id: str) -> bool:
        a = self.locate(earlier_id)
        b = self.locate(later_id)
        if a is None or b is None:
            return False
        return a < b

    def replace(self, **changes) -> "Assessment":
        """Return a re-validated copy with `changes` applied."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self).model_validate(data)

    # ----- conversion -----

    def to_document(self) -> AssessmentDocument:
        sections: List[SectionDocument] = []
        for s_idx, section in enumerate(self.sections):
            questions = [
                self.questions[qid].model_copy(update={"order": q_idx})
                for q_idx, qid in enumerate(section.question_ids)
            ]
            sections.append(
                SectionDocument(
                    id=section.id,
                    title=section.title,
                    description=section.description,
                    questions=questions,
                    order=s_idx,
                )
            )
        return AssessmentDocument(
            id=self.id,
            job_id=self.job_id,
            title=self.title,
            description=self.description,
            sections=sections,
            time_limit=self.time_limit,
            is_published=self.is_published,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_document(cls, document: AssessmentDocument) -> "Assessment":
        now = utcnow()
        ordered_sections = sorted(document.sections, key=lambda s: s.order)
        sections: List[Section] = []
        questions: Dict[str, Question] = {}
        for s_idx, sdoc in enumerate(ordered_sections):
            ordered_questions = sorted(sdoc.questions, key=lambda q: q.order)
            ids: List[str] = []
            for q_idx, question in enumerate(ordered_questions):
                questions[question.id] = question.model_copy(update={"order": q_idx})
                ids.append(question.id)
            sections.append(
                Section(
                    id=sdoc.id,
                    title=sdoc.title,
                    description=sdoc.description,
                    order=s_idx,
                    question_ids=tuple(ids),
                )
            )
        return cls(
            id=document.id or "",
            job_id=document.job_id,
            title=document.title,
            description=document.description,
            time_limit=document.time_limit,
            is_published=document.is_published,
            created_at=document.created_at or now,
            updated_at=document.updated_at or now,
            sections=tuple(sections),
            questions=questions,
        )


__all__ = [
    "QuestionType",
    "QuestionTypeName",
    "CHOICE_TYPES",
    "TEXT_TYPES",
    "ALL_TYPES",
    "AnswerMap",
    "ValidationRules",
    "ConditionalRule",
    "Question",
    "SectionDocument",
    "AssessmentDocument",
    "Section",
    "Assessment",
    "utcnow",
]
