"""Local draft records held by the draft store."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from assessment_engine.models.assessment import Assessment, AssessmentDocument, utcnow

DRAFT_FORMAT_VERSION = "1.0"


class DraftKind:
    AUTHOR = "author"
    RESPONSE = "response"


class AuthorDraft(BaseModel):
    """Full snapshot of an assessment being authored."""

    model_config = ConfigDict(frozen=True)

    assessment_id: str
    snapshot: Assessment
    saved_at: datetime = Field(default_factory=utcnow)


class ResponseDraft(BaseModel):
    """Partial answers of a candidate taking an assessment."""

    model_config = ConfigDict(frozen=True)

    assessment_id: str
    answers: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    saved_at: datetime = Field(default_factory=utcnow)


class AuthorDraftPayload(BaseModel):
    """JSON payload persisted for an author draft."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: str = DRAFT_FORMAT_VERSION
    assessment_id: str
    saved_at: datetime
    assessment: AssessmentDocument


class ResponseDraftPayload(BaseModel):
    """JSON payload persisted for a response draft."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: str = DRAFT_FORMAT_VERSION
    assessment_id: str
    saved_at: datetime
    answers: Dict[str, Union[str, List[str]]]


__all__ = [
    "DRAFT_FORMAT_VERSION",
    "DraftKind",
    "AuthorDraft",
    "ResponseDraft",
    "AuthorDraftPayload",
    "ResponseDraftPayload",
]
