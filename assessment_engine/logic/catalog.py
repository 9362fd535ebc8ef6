"""Assessment catalog: merged listing of canonical assessments and local drafts.

Local author drafts are shown next to canonical records (flagged
``is_local_draft``); a draft replaces the canonical entry with the same id
because it holds the newer, unsaved edits.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field

from assessment_engine.logic.draft_store import DraftStore, author_key
from assessment_engine.models.assessment import Assessment, AssessmentDocument, ConditionalRule, Section, utcnow
from assessment_engine.models.drafts import AuthorDraft

logger = logging.getLogger(__name__)

PAGE_SIZE = 9


class ListingFilter(BaseModel):
    status: Literal["all", "published", "draft", "local-drafts"] = "all"
    search: str = ""
    job_id: Optional[str] = None
    sort: Literal["recent", "oldest", "az", "za"] = "recent"
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=PAGE_SIZE, ge=1)


class ListingItem(BaseModel):
    assessment: AssessmentDocument
    is_local_draft: bool = False
    last_modified: datetime


class Listing(BaseModel):
    items: List[ListingItem]
    total: int
    page: int
    page_size: int
    total_pages: int


def _matches(doc: AssessmentDocument, flt: ListingFilter) -> bool:
    if flt.job_id and doc.job_id != flt.job_id:
        return False
    query = flt.search.strip().lower()
    if query and query not in doc.title.lower() and query not in doc.description.lower():
        return False
    return True


def build_listing(
    canonical: Iterable[AssessmentDocument],
    drafts: Iterable[AuthorDraft],
    filter: Optional[ListingFilter] = None,
) -> Listing:
    flt = filter or ListingFilter()
    local = [
        ListingItem(assessment=d.snapshot.to_document(), is_local_draft=True, last_modified=d.saved_at)
        for d in drafts
    ]
    remote = [
        ListingItem(assessment=doc, last_modified=doc.updated_at or doc.created_at or utcnow())
        for doc in canonical
    ]

    if flt.status == "local-drafts":
        pool = local
    elif flt.status == "published":
        pool = [i for i in remote if i.assessment.is_published]
    elif flt.status == "draft":
        pool = [i for i in remote if not i.assessment.is_published]
    else:
        draft_ids = {i.assessment.id for i in local}
        pool = [i for i in remote if i.assessment.id not in draft_ids] + local

    items = [i for i in pool if _matches(i.assessment, flt)]
    if flt.sort in ("recent", "oldest"):
        items.sort(key=lambda i: i.last_modified, reverse=flt.sort == "recent")
    else:
        items.sort(key=lambda i: i.assessment.title.lower(), reverse=flt.sort == "za")

    total = len(items)
    start = (flt.page - 1) * flt.page_size
    return Listing(
        items=items[start:start + flt.page_size],
        total=total,
        page=flt.page,
        page_size=flt.page_size,
        total_pages=math.ceil(total / flt.page_size) if total else 0,
    )


def duplicate_assessment(
    assessment: Assessment,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    clock: Callable[[], datetime] = utcnow,
) -> Assessment:
    """Copy ``assessment`` under fresh ids, titled "<title> (Copy)" and unpublished.

    Section and question ids are regenerated and conditional references are
    remapped to the copied questions. The copy has never been saved, so its
    first save creates a new canonical record.
    """
    id_map: Dict[str, str] = {qid: id_factory() for qid in assessment.questions}
    questions = {}
    for qid, question in assessment.questions.items():
        rule = question.conditional
        if rule is not None and rule.depends_on:
            rule = ConditionalRule(depends_on=id_map.get(rule.depends_on, ""), show_when=rule.show_when)
        questions[id_map[qid]] = question.model_copy(update={"id": id_map[qid], "conditional": rule})
    sections = tuple(
        Section(
            id=id_factory(),
            title=s.title,
            description=s.description,
            order=s.order,
            question_ids=tuple(id_map[qid] for qid in s.question_ids),
        )
        for s in assessment.sections
    )
    now = clock()
    copy = assessment.replace(
        id=id_factory(),
        title=f"{assessment.title} (Copy)",
        is_published=False,
        created_at=now,
        updated_at=now,
        sections=sections,
        questions=questions,
    )
    logger.info("catalog.duplicated source=%s copy=%s", assessment.id, copy.id)
    return copy


def delete_local_draft(draft_store: DraftStore, assessment_id: str) -> bool:
    """Remove a local author draft; canonical records are never deleted here."""
    draft_store.cancel_pending(author_key(assessment_id))
    return draft_store.clear_author_draft(assessment_id)


__all__ = [
    "PAGE_SIZE",
    "ListingFilter",
    "ListingItem",
    "Listing",
    "build_listing",
    "duplicate_assessment",
    "delete_local_draft",
]
