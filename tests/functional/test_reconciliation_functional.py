"""Functional tests for reconciliation of local assessments with the canonical store."""

from __future__ import annotations

import pytest

from assessment_engine.errors import (
    PermanentRemoteError,
    ReconciliationError,
    SaveInProgressError,
    TransientRemoteError,
)
from assessment_engine.logic import repository_assessments
from assessment_engine.logic.events import (
    ASSESSMENT_CREATED,
    ASSESSMENT_UPDATED,
    NOTIFY_ERROR,
    LoggingNotifier,
    get_buffered_events,
)
from assessment_engine.logic.reconciliation import (
    RETRY_HINT,
    USER_MESSAGES,
    Created,
    ReconciliationService,
    RetryPolicy,
    Updated,
)
from assessment_engine.logic.remote_store import InProcessRemoteStore

pytestmark = pytest.mark.anyio


class SleepRecorder:
    def __init__(self) -> None:
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def remote() -> InProcessRemoteStore:
    return InProcessRemoteStore()


@pytest.fixture
def service(remote, draft_store, notifier, sleeps) -> ReconciliationService:
    return ReconciliationService(remote, draft_store=draft_store, notifier=notifier, sleep=sleeps)


async def test_create_then_update_keeps_one_record(service, sample_assessment):
    """Verifies reconciliation identity: first save creates, the next updates."""
    first = await service.save("job-1", sample_assessment)
    assert isinstance(first, Created)
    assert first.id != sample_assessment.id  # canonical id is minted by the store
    assert repository_assessments.count_assessments() == 1

    second = await service.save("job-1", first.record.replace(title="Renamed"))
    assert isinstance(second, Updated)
    assert second.id == first.id
    assert second.record.title == "Renamed"
    assert repository_assessments.count_assessments() == 1

    events = [e["type"] for e in get_buffered_events()]
    assert events == [ASSESSMENT_CREATED, ASSESSMENT_UPDATED]


async def test_success_clears_author_draft_and_pending_timer(service, draft_store, scheduler, sample_assessment, notifier):
    draft_store.save_author_draft(sample_assessment)
    draft_store.schedule_author_draft(sample_assessment)

    await service.save("job-1", sample_assessment)

    assert draft_store.load_author_draft(sample_assessment.id) is None
    assert scheduler.active() == []
    assert notifier.get_buffered()[-1] == {"kind": "success", "message": "Assessment saved successfully"}


def _sequence(*items):
    """Async side effect that raises or delegates to the next item per call."""
    queue = list(items)

    async def side_effect(*args, **kwargs):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return await item(*args, **kwargs)

    return side_effect


async def test_transient_failures_retry_with_backoff_and_one_key(service, remote, sleeps, mocker, sample_assessment):
    """Verifies retries reuse the same idempotency key and back off 1 s, 2 s."""
    create = mocker.patch.object(
        remote,
        "create_assessment",
        side_effect=_sequence(
            TransientRemoteError("API Error: 503", kind="server_error"),
            TransientRemoteError("API Error: 502", kind="server_error"),
            remote.create_assessment,
        ),
    )

    result = await service.save("job-1", sample_assessment)

    assert isinstance(result, Created)
    assert sleeps.delays == [1.0, 2.0]
    keys = {call.args[2] for call in create.call_args_list}
    assert len(keys) == 1 and None not in keys
    assert repository_assessments.count_assessments() == 1


async def test_exhausted_retries_raise_typed_error(service, remote, sleeps, notifier, draft_store, mocker, sample_assessment):
    draft_store.save_author_draft(sample_assessment)
    mocker.patch.object(
        remote,
        "create_assessment",
        side_effect=TransientRemoteError("Network error", kind="service_unavailable"),
    )

    with pytest.raises(ReconciliationError) as exc:
        await service.save("job-1", sample_assessment)

    assert exc.value.kind == "service_unavailable"
    assert exc.value.attempts == 3
    assert exc.value.user_message == USER_MESSAGES["service_unavailable"]
    assert sleeps.delays == [1.0, 2.0]
    assert notifier.get_buffered()[-1] == {
        "kind": NOTIFY_ERROR,
        "message": USER_MESSAGES["service_unavailable"] + RETRY_HINT,
    }
    # The local draft survives a failed save
    assert draft_store.load_author_draft(sample_assessment.id) is not None


async def test_permanent_errors_are_not_retried(service, remote, sleeps, mocker, sample_assessment):
    create = mocker.patch.object(
        remote, "create_assessment", side_effect=PermanentRemoteError("API Error: 422", status=422)
    )
    with pytest.raises(ReconciliationError) as exc:
        await service.save("job-1", sample_assessment)
    assert exc.value.kind == "rejected"
    assert exc.value.attempts == 1
    assert create.call_count == 1
    assert sleeps.delays == []


async def test_concurrent_save_for_same_assessment_is_refused(remote, sample_assessment):
    service = ReconciliationService(remote)
    service._in_flight.add(sample_assessment.id)
    with pytest.raises(SaveInProgressError):
        await service.save("job-1", sample_assessment)
    assert service.is_saving(sample_assessment.id)


def test_retry_policy_delays():
    policy = RetryPolicy(max_attempts=4, base_delay=0.25)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


async def test_save_assessment_creates_then_updates_by_id(remote, sample_assessment):
    created = await remote.save_assessment("job-1", sample_assessment.to_document())
    assert created.id != sample_assessment.id
    assert created.job_id == "job-1"

    updated = await remote.save_assessment("job-1", created.model_copy(update={"title": "Renamed"}))
    assert updated.id == created.id
    assert updated.title == "Renamed"
    assert repository_assessments.count_assessments("job-1") == 1
