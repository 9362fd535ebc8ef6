"""Candidate response types and collaborator references."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobRef(BaseModel):
    """Read-only job reference supplied by the surrounding application."""

    id: str
    title: str = ""


class Submission(BaseModel):
    """Completed answer set produced by the player."""

    model_config = ConfigDict(frozen=True)

    assessment_id: str
    candidate_id: str
    answers: Dict[str, Union[str, List[str]]]
    elapsed_seconds: int = Field(ge=0)


class SubmitRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    assessment_id: str
    candidate_id: str
    responses: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    time_spent: int = Field(default=0, ge=0)


class ResponseRecord(BaseModel):
    """Canonical record of a submitted response."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    assessment_id: str
    candidate_id: str
    responses: Dict[str, Union[str, List[str]]]
    submitted_at: datetime
    time_spent: int = 0


__all__ = ["JobRef", "Submission", "SubmitRequest", "ResponseRecord"]
