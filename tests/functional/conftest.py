from __future__ import annotations

"""Functional test bootstrap for the assessment engine.

Functional tests use a single in-memory SQLite database shared across the
process for the canonical store. The canonical migrations are applied once at
session start so the schema exists before tests build the FastAPI app via
TestClient; rows are cleared between tests.

Timers and clocks are replaced with deterministic fakes so debounce and draft
timestamps can be driven explicitly.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import pytest

# Point the app at the shared in-memory SQLite before any engine is built
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.pop("TEST_DATABASE_URL", None)
os.environ["SIMULATION_WRITE_FAILURE_RATE"] = "0"
os.environ["SIMULATION_MAX_LATENCY_MS"] = "0"

from sqlalchemy import text as sql_text  # noqa: E402

from assessment_engine.db.base import get_engine  # noqa: E402
from assessment_engine.db.migrations_runner import CANONICAL_MIGRATIONS, apply_migrations  # noqa: E402
from assessment_engine.logic import events as _events  # noqa: E402
from assessment_engine.logic.debounce import Debouncer  # noqa: E402
from assessment_engine.logic.draft_store import DraftStore  # noqa: E402
from assessment_engine.models.assessment import (  # noqa: E402
    Assessment,
    ConditionalRule,
    Question,
    Section,
    ValidationRules,
)


@pytest.fixture(scope="session", autouse=True)
def functional_sqlite_bootstrap() -> None:
    """Session-level bootstrap: apply canonical migrations once for the shared DB."""
    engine = get_engine(os.environ["DATABASE_URL"])
    apply_migrations(engine, CANONICAL_MIGRATIONS)
    yield


@pytest.fixture(autouse=True)
def clean_state() -> None:
    """Clear canonical tables and the domain event buffer around each test."""
    engine = get_engine(os.environ["DATABASE_URL"])
    with engine.begin() as conn:
        conn.execute(sql_text("DELETE FROM assessment_response"))
        conn.execute(sql_text("DELETE FROM assessment"))
    _events.EVENT_BUFFER.clear()
    yield
    _events.EVENT_BUFFER.clear()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# -----------------------------
# Deterministic time
# -----------------------------


class FakeClock:
    """Callable clock returning a controllable UTC datetime."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class _ManualHandle:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: List[_ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted(
            (h for h in self.handles if not h.cancelled and h.due <= self.now),
            key=lambda h: h.due,
        )
        for handle in due:
            self.handles.remove(handle)
            if not handle.cancelled:
                handle.callback()

    def active(self) -> List[_ManualHandle]:
        return [h for h in self.handles if not h.cancelled]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def draft_store(scheduler: ManualScheduler, clock: FakeClock) -> DraftStore:
    store = DraftStore(dsn="sqlite+pysqlite:///:memory:", debouncer=Debouncer(scheduler), clock=clock)
    yield store
    store.close()


# -----------------------------
# Sample assessments
# -----------------------------


def make_assessment(**overrides) -> Assessment:
    """Two sections; q3 shows only when q1 was answered "Yes"."""
    questions = {
        "q1": Question(id="q1", type="single-choice", text="Do you have a licence?", required=True, options=("Yes", "No")),
        "q2": Question(
            id="q2",
            type="short-text",
            text="Your name",
            required=True,
            order=1,
            validation=ValidationRules(min_length=2, max_length=40),
        ),
        "q3": Question(
            id="q3",
            type="short-text",
            text="Licence number",
            required=True,
            conditional=ConditionalRule(depends_on="q1", show_when="Yes"),
        ),
        "q4": Question(
            id="q4",
            type="numeric",
            text="Years of experience",
            order=1,
            validation=ValidationRules(min=0, max=50),
        ),
    }
    data = dict(
        id="a-1",
        job_id="job-1",
        title="Driver screening",
        description="Screening for delivery drivers",
        sections=(
            Section(id="s1", title="Basics", order=0, question_ids=("q1", "q2")),
            Section(id="s2", title="Details", order=1, question_ids=("q3", "q4")),
        ),
        questions=questions,
    )
    data.update(overrides)
    return Assessment(**data)


@pytest.fixture
def sample_assessment() -> Assessment:
    return make_assessment()


@pytest.fixture
def assessment_factory() -> Callable[..., Assessment]:
    return make_assessment
