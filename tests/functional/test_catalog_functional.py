"""Functional tests for the merged assessment catalog, duplication and local draft deletion."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

from assessment_engine.logic.catalog import (
    ListingFilter,
    build_listing,
    delete_local_draft,
    duplicate_assessment,
)
from assessment_engine.logic.draft_store import author_key
from assessment_engine.models.assessment import AssessmentDocument
from assessment_engine.models.drafts import AuthorDraft

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _doc(i: int, title: str, published: bool = False, job_id: str = "job-1", description: str = "") -> AssessmentDocument:
    stamp = T0 + timedelta(hours=i)
    return AssessmentDocument(
        id=f"c-{i}",
        job_id=job_id,
        title=title,
        description=description,
        is_published=published,
        created_at=stamp,
        updated_at=stamp,
    )


def test_status_filters(assessment_factory):
    canonical = [_doc(1, "Alpha", published=True), _doc(2, "Beta")]
    drafts = [AuthorDraft(assessment_id="a-1", snapshot=assessment_factory(), saved_at=T0 + timedelta(days=1))]

    everything = build_listing(canonical, drafts)
    assert [i.assessment.id for i in everything.items] == ["a-1", "c-2", "c-1"]
    assert [i.is_local_draft for i in everything.items] == [True, False, False]

    published = build_listing(canonical, drafts, ListingFilter(status="published"))
    assert [i.assessment.id for i in published.items] == ["c-1"]
    unpublished = build_listing(canonical, drafts, ListingFilter(status="draft"))
    assert [i.assessment.id for i in unpublished.items] == ["c-2"]
    local = build_listing(canonical, drafts, ListingFilter(status="local-drafts"))
    assert [i.assessment.id for i in local.items] == ["a-1"]


def test_local_draft_replaces_canonical_entry_with_same_id(assessment_factory):
    canonical = [_doc(1, "Alpha")]
    drafts = [AuthorDraft(assessment_id="c-1", snapshot=assessment_factory(id="c-1", title="Alpha (edited)"), saved_at=T0)]
    listing = build_listing(canonical, drafts)
    assert listing.total == 1
    assert listing.items[0].is_local_draft
    assert listing.items[0].assessment.title == "Alpha (edited)"


def test_search_job_filter_and_title_sort():
    canonical = [
        _doc(1, "charlie", description="warehouse"),
        _doc(2, "Alpha", job_id="job-2"),
        _doc(3, "bravo", description="Warehouse shifts"),
    ]
    found = build_listing(canonical, [], ListingFilter(search="WAREHOUSE", sort="az"))
    assert [i.assessment.title for i in found.items] == ["bravo", "charlie"]

    za = build_listing(canonical, [], ListingFilter(sort="za"))
    assert [i.assessment.title for i in za.items] == ["charlie", "bravo", "Alpha"]

    job = build_listing(canonical, [], ListingFilter(job_id="job-2"))
    assert [i.assessment.id for i in job.items] == ["c-2"]

    oldest = build_listing(canonical, [], ListingFilter(sort="oldest"))
    assert [i.assessment.id for i in oldest.items] == ["c-1", "c-2", "c-3"]


def test_pagination_uses_nine_per_page():
    canonical = [_doc(i, f"A{i:02d}") for i in range(20)]
    page3 = build_listing(canonical, [], ListingFilter(page=3))
    assert page3.total == 20
    assert page3.total_pages == 3
    assert len(page3.items) == 2
    assert build_listing([], []).total_pages == 0


def test_duplicate_gets_fresh_ids_and_remapped_conditionals(sample_assessment, clock):
    counter = itertools.count(1)
    copy = duplicate_assessment(sample_assessment, id_factory=lambda: f"n-{next(counter)}", clock=clock)

    assert copy.title == "Driver screening (Copy)"
    assert copy.is_published is False
    assert copy.id not in {sample_assessment.id, ""}
    assert set(copy.questions).isdisjoint(sample_assessment.questions)
    assert {s.id for s in copy.sections}.isdisjoint({s.id for s in sample_assessment.sections})

    licence = copy.question_at(1, 0)
    prerequisite = copy.question_at(0, 0)
    assert licence.text == "Licence number"
    assert licence.conditional.depends_on == prerequisite.id
    assert copy.created_at == clock.now
    # The source is untouched
    assert sample_assessment.questions["q3"].conditional.depends_on == "q1"


def test_delete_local_draft_cancels_pending_write(draft_store, scheduler, sample_assessment):
    draft_store.save_author_draft(sample_assessment)
    draft_store.schedule_author_draft(sample_assessment)

    assert delete_local_draft(draft_store, "a-1") is True
    scheduler.advance(10)

    assert draft_store.load_author_draft("a-1") is None
    assert not draft_store.debouncer.is_pending(author_key("a-1"))
