import uuid
from datetime import timedelta

import pytest
from sqlmodel import select

from sdv_pipeline.core.enums import JobStatus, JobType, MergeStatus
from sdv_pipeline.core.exceptions import (
    ConflictError,
    JoinInconsistency,
    MergeError,
    NotFoundError,
    ValidationException,
)
from sdv_pipeline.infrastructure.db.models import (
    MergedRecord,
    QueryRecord,
    SdvDataRecord,
    SdvUpload,
    SiteDataEntryRecord,
    UploadJob,
)

from conftest import TENANT


def add_job(session, upload, status):
    """The ingestion job that produced ``upload``."""
    session.add(UploadJob(
        tenant_id=upload.tenant_id,
        job_type=upload.job_type,
        file_name=upload.file_name,
        status=status,
        upload_id=upload.id,
    ))


def add_primary(session, entries, tenant_id=TENANT, status=JobStatus.COMPLETED):
    """entries: (subject, event, form, item, edit_date_time) tuples"""
    upload = SdvUpload(tenant_id=tenant_id, job_type=JobType.SITE_DATA_ENTRY, file_name="entries.csv")
    session.add(upload)
    add_job(session, upload, status)
    for row_number, (subject, event, form, item, edited) in enumerate(entries, start=1):
        session.add(SiteDataEntryRecord(
            upload_id=upload.id,
            row_number=row_number,
            merge_key=f"{subject}|{event}|{form}|{item}",
            site_name="Site A",
            subject_id=subject,
            event_name=event,
            form_name=form,
            item_id=item,
            item_export_label=f"{form}.{item}",
            edit_date_time=edited,
            edit_by="nurse",
        ))
    session.commit()
    return upload


def add_secondary(session, primary, verifications, status=JobStatus.COMPLETED, file_name="sdv.csv"):
    """verifications: (merge_key, sdv_date) pairs"""
    upload = SdvUpload(
        tenant_id=primary.tenant_id,
        job_type=JobType.SDV_DATA,
        file_name=file_name,
        primary_upload_id=primary.id,
    )
    session.add(upload)
    add_job(session, upload, status)
    for row_number, (merge_key, sdv_date) in enumerate(verifications, start=1):
        subject, event, form, item = merge_key.split("|")
        session.add(SdvDataRecord(
            upload_id=upload.id,
            row_number=row_number,
            merge_key=merge_key,
            subject_id=subject,
            event_name=event,
            form_name=form,
            item_id=item,
            item_name=item,
            sdv_by="monitor",
            sdv_date=sdv_date,
        ))
    session.commit()
    return upload


def merged_rows(session, upload_id):
    statement = select(MergedRecord).where(MergedRecord.upload_id == upload_id).order_by(MergedRecord.position)
    return list(session.exec(statement).all())


async def test_entered_but_unverified_field(merge_service, session):
    primary = add_primary(session, [("S1", "V1", "F1", "I1", "2024-01-05")])

    result = await merge_service.merge(primary.id, TENANT)

    assert result.merged_records == 1
    assert result.secondary_upload_id is None
    [record] = merged_rows(session, primary.id)
    assert record.merge_key == "S1|V1|F1|I1"
    assert (record.data_entered, record.data_verified, record.data_expected) == (1, 0, 0)
    assert record.data_needing_review == 1
    assert record.sdv_percent == 0
    assert record.estimate_hours == 0.02
    assert record.estimate_days == 0
    assert record.visit_type == "V1"
    assert record.crf_name == "F1"
    assert record.crf_field == "F1.I1"


async def test_verified_field(merge_service, session):
    primary = add_primary(session, [("S1", "V1", "F1", "I1", "2024-01-05")])
    secondary = add_secondary(session, primary, [("S1|V1|F1|I1", "2024-01-10")])

    result = await merge_service.merge(primary.id, TENANT)

    assert result.secondary_upload_id == secondary.id
    [record] = merged_rows(session, primary.id)
    assert record.data_verified == 1
    assert record.data_needing_review == 0
    assert record.sdv_percent == 100
    assert record.extra_fields["sdv_by"] == "monitor"
    assert record.extra_fields["sdv_date"] == "2024-01-10"

    session.refresh(primary)
    session.refresh(secondary)
    assert primary.merge_status == MergeStatus.COMPLETED
    assert secondary.merge_status == MergeStatus.COMPLETED
    assert primary.merged_at is not None
    assert primary.merged_record_count == 1


async def test_metric_invariants_hold_for_every_record(merge_service, session):
    primary = add_primary(session, [
        ("S1", "V1", "F1", "I1", "2024-01-05"),
        ("S1", "V1", "F1", "I2", ""),
        ("S2", "V1", "F1", "I1", "2024-01-06"),
        ("S2", "V2", "F2", "I1", "   "),
    ])
    add_secondary(session, primary, [
        ("S1|V1|F1|I1", "2024-01-10"),
        ("S1|V1|F1|I2", "2024-01-10"),
        ("S9|V1|F1|I1", "2024-01-10"),
    ])

    await merge_service.merge(primary.id, TENANT)

    records = merged_rows(session, primary.id)
    assert len(records) == 4
    for record in records:
        assert record.data_entered + record.data_expected == 1
        assert record.data_needing_review == record.data_entered - record.data_verified
        assert record.data_needing_review >= 0
    # Verification of a field that was never entered does not count
    assert records[1].data_verified == 0


async def test_duplicate_keys_keep_the_last_row(merge_service, session):
    primary = add_primary(session, [
        ("S1", "V1", "F1", "I1", ""),
        ("S2", "V1", "F1", "I1", "2024-01-05"),
        ("S1", "V1", "F1", "I1", "2024-01-07"),
    ])
    add_secondary(session, primary, [("S1|V1|F1|I1", ""), ("S1|V1|F1|I1", "2024-01-09")])

    await merge_service.merge(primary.id, TENANT)

    records = merged_rows(session, primary.id)
    assert [r.merge_key for r in records] == ["S1|V1|F1|I1", "S2|V1|F1|I1"]
    assert records[0].extra_fields["edit_date_time"] == "2024-01-07"
    assert records[0].data_verified == 1


async def test_query_counts_are_split_by_state(merge_service, session):
    primary = add_primary(session, [("S1", "V1", "F1", "I1", "2024-01-05")])
    for state in ("Query Raised", "Query Raised", "Query Resolved", "Query Closed"):
        session.add(QueryRecord(tenant_id=TENANT, merge_key="S1|V1|F1|I1", query_state=state))
    session.add(QueryRecord(tenant_id="tenant-b", merge_key="S1|V1|F1|I1", query_state="Query Raised"))
    session.commit()

    await merge_service.merge(primary.id, TENANT)

    [record] = merged_rows(session, primary.id)
    assert record.opened_queries == 2
    assert record.answered_queries == 1


async def test_merge_is_idempotent(merge_service, session):
    primary = add_primary(session, [
        ("S1", "V1", "F1", "I1", "2024-01-05"),
        ("S1", "V1", "F1", "I2", ""),
    ])
    add_secondary(session, primary, [("S1|V1|F1|I1", "2024-01-10")])

    def snapshot():
        return [
            record.model_dump(exclude={"id", "created_at"})
            for record in merged_rows(session, primary.id)
        ]

    await merge_service.merge(primary.id, TENANT)
    first = snapshot()
    await merge_service.merge(primary.id, TENANT)
    second = snapshot()

    assert first == second
    assert len(second) == 2


async def test_merge_pages_through_large_uploads(merge_service, session, settings):
    settings.pipeline.merge_page_size = 3
    settings.pipeline.merge_batch_size = 2
    entries = [(f"S{n}", "V1", "F1", "I1", "2024-01-05") for n in range(10)]
    primary = add_primary(session, entries)

    result = await merge_service.merge(primary.id, TENANT)

    assert result.merged_records == 10
    assert [r.subject_id for r in merged_rows(session, primary.id)] == [f"S{n}" for n in range(10)]


async def test_merge_rejects_unknown_or_secondary_uploads(merge_service, session):
    primary = add_primary(session, [("S1", "V1", "F1", "I1", "2024-01-05")])
    secondary = add_secondary(session, primary, [])

    with pytest.raises(NotFoundError):
        await merge_service.merge(uuid.uuid4(), TENANT)
    with pytest.raises(NotFoundError):
        await merge_service.merge(primary.id, "tenant-b")
    with pytest.raises(ValidationException):
        await merge_service.merge(secondary.id, TENANT)


async def test_failed_merge_marks_primary_failed(merge_service, session, monkeypatch):
    primary = add_primary(session, [("S1", "V1", "F1", "I1", "2024-01-05")])

    async def broken_insert(records):
        raise ValidationException("constraint violated")

    monkeypatch.setattr(merge_service, "_insert", broken_insert)

    with pytest.raises(MergeError):
        await merge_service.merge(primary.id, TENANT)

    session.refresh(primary)
    assert primary.merge_status == MergeStatus.FAILED
    assert "constraint violated" in primary.merge_error
    assert merged_rows(session, primary.id) == []


@pytest.mark.parametrize("status", [JobStatus.FAILED, JobStatus.PROCESSING])
async def test_unfinished_secondary_is_not_merged(merge_service, session, status):
    primary = add_primary(session, [("S1", "V1", "F1", "I1", "2024-01-05")])
    good = add_secondary(session, primary, [("S1|V1|F1|I1", "2024-01-10")])
    partial = add_secondary(session, primary, [], status=status, file_name="sdv_partial.csv")
    partial.created_at = good.created_at + timedelta(seconds=1)
    session.add(partial)
    session.commit()

    result = await merge_service.merge(primary.id, TENANT)

    assert result.secondary_upload_id == good.id
    assert [r.data_verified for r in merged_rows(session, primary.id)] == [1]
    session.refresh(partial)
    assert partial.merge_status == MergeStatus.PENDING


async def test_merge_refuses_primary_still_ingesting(merge_service, session):
    primary = add_primary(session, [("S1", "V1", "F1", "I1", "2024-01-05")], status=JobStatus.PROCESSING)

    with pytest.raises(ConflictError):
        await merge_service.merge(primary.id, TENANT)

    session.refresh(primary)
    assert primary.merge_status == MergeStatus.PENDING
    assert merged_rows(session, primary.id) == []


async def test_unmatched_key_is_unverified_not_an_error(merge_service, session):
    primary = add_primary(session, [
        ("S1", "V1", "F1", "I1", "2024-01-05"),
        ("S2", "V1", "F1", "I1", "2024-01-05"),
    ])
    add_secondary(session, primary, [("S1|V1|F1|I1", "2024-01-10")])

    result = await merge_service.merge(primary.id, TENANT)

    assert result.merged_records == 2
    assert [r.data_verified for r in merged_rows(session, primary.id)] == [1, 0]

    error = JoinInconsistency("S2|V1|F1|I1")
    assert error.status_code == 409
    assert error.details == {"merge_key": "S2|V1|F1|I1"}
