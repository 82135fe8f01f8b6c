import uuid
from datetime import timedelta

import pytest

from sdv_pipeline.core.enums import JobStatus, JobType
from sdv_pipeline.core.exceptions import InvalidJobTransition, NotFoundError
from sdv_pipeline.infrastructure.messaging import JobEventType
from sdv_pipeline.services.upload_job_service import MAX_FAILED_ROW_DETAILS
from sdv_pipeline.utils.date_utils import seconds_ago, utcnow

from conftest import TENANT


async def _create(job_service, total_records=100, tenant_id=TENANT):
    return await job_service.create(
        tenant_id=tenant_id,
        created_by="alice",
        job_type=JobType.SITE_DATA_ENTRY,
        file_name="entries.csv",
        total_records=total_records,
        metadata={"is_chunked": False, "total_chunks": 1},
    )


async def test_create_starts_pending(job_service, events):
    job = await _create(job_service)

    assert job.status == JobStatus.PENDING
    assert job.progress == 0
    assert job.job_metadata["total_chunks"] == 1
    assert [e.event_type for e in events] == [JobEventType.CREATED]


async def test_happy_path_lifecycle(job_service, events):
    job = await _create(job_service)
    upload_id = uuid.uuid4()

    job = await job_service.start(job.id)
    assert job.status == JobStatus.PROCESSING
    assert job.started_at is not None

    job = await job_service.update_progress(job.id, 50, 50)
    assert (job.processed_records, job.progress) == (50, 50)

    job = await job_service.complete(job.id, upload_id)
    assert job.status == JobStatus.COMPLETED
    assert job.progress == 100
    assert job.completed_at is not None
    assert job.upload_id == upload_id

    assert [e.event_type for e in events] == [
        JobEventType.CREATED,
        JobEventType.STARTED,
        JobEventType.PROGRESS,
        JobEventType.COMPLETED,
    ]
    assert events[-1].status == "completed"


async def test_progress_is_clamped(job_service):
    job = await _create(job_service)
    await job_service.start(job.id)

    job = await job_service.update_progress(job.id, 10, -5)
    assert job.progress == 0

    job = await job_service.update_progress(job.id, 100, 250)
    assert job.progress == 100


async def test_progress_never_moves_backwards_while_processing(job_service):
    job = await _create(job_service)
    await job_service.start(job.id)

    await job_service.update_progress(job.id, 67, 67)
    job = await job_service.update_progress(job.id, 33, 33)

    assert job.progress == 67
    assert job.processed_records == 33


async def test_progress_can_carry_a_status_change(job_service, events):
    job = await _create(job_service)
    await job_service.start(job.id)

    job = await job_service.update_progress(job.id, 40, 40, status=JobStatus.FAILED, error_message="disk full")

    assert job.status == JobStatus.FAILED
    assert job.error_message == "disk full"
    assert job.completed_at is not None
    assert events[-1].event_type == JobEventType.FAILED


@pytest.mark.parametrize("finish", ["complete", "fail", "cancel"])
async def test_terminal_jobs_reject_transitions(job_service, finish):
    job = await _create(job_service)
    await job_service.start(job.id)
    await job_service.cancel(job.id)

    with pytest.raises(InvalidJobTransition):
        if finish == "fail":
            await job_service.fail(job.id, "late failure")
        else:
            await getattr(job_service, finish)(job.id)

    job = await job_service.get_job(job.id)
    assert job.status == JobStatus.CANCELLED


async def test_progress_after_cancel_is_ignored(job_service):
    job = await _create(job_service)
    await job_service.start(job.id)
    await job_service.update_progress(job.id, 10, 10)
    await job_service.cancel(job.id)

    job = await job_service.update_progress(job.id, 90, 90)

    assert job.status == JobStatus.CANCELLED
    assert job.progress == 10
    assert await job_service.is_cancelled(job.id)


async def test_cannot_complete_a_pending_job(job_service):
    job = await _create(job_service)

    with pytest.raises(InvalidJobTransition):
        await job_service.complete(job.id)


async def test_fail_keeps_structured_details(job_service):
    job = await _create(job_service)
    await job_service.start(job.id)

    job = await job_service.fail(job.id, "Chunk 2 failed", {"chunk_number": 2})

    assert job.status == JobStatus.FAILED
    assert job.error_message == "Chunk 2 failed"
    assert job.error_details == {"chunk_number": 2}


async def test_failed_row_details_are_bounded(job_service):
    job = await _create(job_service)
    await job_service.start(job.id)

    details = [{"row": n, "error": "bad"} for n in range(MAX_FAILED_ROW_DETAILS + 20)]
    job = await job_service.record_failures(job.id, len(details), details)

    assert job.failed_records == MAX_FAILED_ROW_DETAILS + 20
    assert len(job.error_details["failed_rows"]) == MAX_FAILED_ROW_DETAILS


async def test_chunk_counter(job_service):
    job = await _create(job_service)
    await job_service.start(job.id)

    assert await job_service.mark_chunk_processed(job.id) == 1
    assert await job_service.mark_chunk_processed(job.id) == 2


async def test_get_job_is_tenant_scoped(job_service):
    job = await _create(job_service)

    assert (await job_service.get_job(job.id, TENANT)).id == job.id
    with pytest.raises(NotFoundError):
        await job_service.get_job(job.id, "someone-else")
    with pytest.raises(NotFoundError):
        await job_service.get_job(uuid.uuid4())


async def test_active_jobs_and_history(job_service):
    pending = await _create(job_service)
    processing = await _create(job_service)
    await job_service.start(processing.id)
    done = await _create(job_service)
    await job_service.start(done.id)
    await job_service.complete(done.id)
    await _create(job_service, tenant_id="tenant-b")

    active = await job_service.get_active_jobs(TENANT)
    assert {job.id for job in active} == {pending.id, processing.id}

    history = await job_service.get_job_history(TENANT)
    assert {job.id for job in history} == {pending.id, processing.id, done.id}
    assert len(await job_service.get_job_history(TENANT, limit=2)) == 2


async def test_stale_processing_jobs_are_failed(job_service, session):
    stale = await _create(job_service)
    await job_service.start(stale.id)
    fresh = await _create(job_service)
    await job_service.start(fresh.id)

    stale.updated_at = seconds_ago(3600)
    session.add(stale)
    session.commit()

    failed = await job_service.fail_stale_jobs(600)

    assert failed == [stale.id]
    stale = await job_service.get_job(stale.id)
    assert stale.status == JobStatus.FAILED
    assert stale.error_message == "Job stalled: no progress for 600 seconds"
    assert (await job_service.get_job(fresh.id)).status == JobStatus.PROCESSING


def test_timestamps_are_timezone_aware_utc():
    assert utcnow().utcoffset() == timedelta(0)
    assert seconds_ago(60).utcoffset() == timedelta(0)


async def test_lifecycle_timestamps_persist(job_service):
    job = await _create(job_service)
    await job_service.start(job.id)
    job = await job_service.complete(job.id, uuid.uuid4())

    stored = await job_service.get_job(job.id)
    assert stored.created_at is not None
    assert stored.started_at is not None
    assert stored.completed_at is not None
