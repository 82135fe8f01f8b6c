"""
Merge engine.

Joins a Site Data Entry upload with its linked SDV Data upload and the
tenant's query tracker on the merge key, and replaces the upload's merged
records with one row per distinct key.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .base import BaseService
from ..core.config import Settings, get_settings
from ..core.constants import QUERY_STATE_RAISED, QUERY_STATE_RESOLVED
from ..core.enums import JobStatus, JobType, MergeStatus
from ..core.exceptions import (
    AppException,
    ConflictError,
    MergeError,
    NotFoundError,
    PersistenceFailure,
    ValidationException,
)
from ..core.logging import get_logger, log_execution_time
from ..infrastructure.db.models import MergedRecord, SdvDataRecord, SdvUpload, SiteDataEntryRecord
from ..infrastructure.db.repositories import (
    MergedRecordRepository,
    QueryRecordRepository,
    RawRecordRepository,
    SdvUploadRepository,
    UploadJobRepository,
)
from ..schemas import MergeResult
from ..transformers import EstimateSettings, calculate_field_metrics
from ..utils.date_utils import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class VerificationEntry:
    sdv_by: Optional[str]
    sdv_date: Optional[str]
    item_name: Optional[str]


@dataclass(frozen=True)
class EntryRow:
    site_name: Optional[str]
    subject_id: Optional[str]
    event_name: Optional[str]
    form_name: Optional[str]
    item_export_label: Optional[str]
    edit_date_time: Optional[str]
    edit_by: Optional[str]


class MergeService(BaseService):
    def __init__(self, db_session: Session, settings: Optional[Settings] = None):
        super().__init__(db_session)
        self.settings = settings or get_settings()
        self.estimates = EstimateSettings.from_settings(self.settings.pipeline)
        self.uploads = SdvUploadRepository(db_session)
        self.entries = RawRecordRepository(SiteDataEntryRecord, db_session)
        self.verifications = RawRecordRepository(SdvDataRecord, db_session)
        self.queries = QueryRecordRepository(db_session)
        self.merged = MergedRecordRepository(db_session)
        self.jobs = UploadJobRepository(db_session)

    def get_service_name(self) -> str:
        return "MergeService"

    async def get_primary(self, primary_upload_id: UUID, tenant_id: str) -> SdvUpload:
        upload = await self.uploads.get(primary_upload_id)
        if upload is None or upload.tenant_id != tenant_id:
            raise NotFoundError("SdvUpload", primary_upload_id)
        if upload.job_type != JobType.SITE_DATA_ENTRY:
            raise ValidationException(
                "Merges run on site data entry uploads",
                field="primary_upload_id",
                value=str(primary_upload_id),
            )
        job = await self.jobs.get_by_upload(primary_upload_id)
        if job is None or job.status != JobStatus.COMPLETED:
            raise ConflictError(
                f"Upload {primary_upload_id} has not finished ingesting",
                resource="SdvUpload",
                details={
                    "upload_id": str(primary_upload_id),
                    "job_status": job.status.value if job else None,
                },
            )
        return upload

    async def _load_entries(self, upload_id: UUID) -> Dict[str, EntryRow]:
        """Primary rows by merge key; a later row replaces an earlier one but keeps its position."""
        entries: Dict[str, EntryRow] = {}
        page_size = self.settings.pipeline.merge_page_size
        async for page in self.entries.iter_upload(upload_id, page_size):
            for row in page:
                entries[row.merge_key] = EntryRow(
                    site_name=row.site_name,
                    subject_id=row.subject_id,
                    event_name=row.event_name,
                    form_name=row.form_name,
                    item_export_label=row.item_export_label,
                    edit_date_time=row.edit_date_time,
                    edit_by=row.edit_by,
                )
        return entries

    async def _load_verifications(self, upload_id: UUID) -> Dict[str, VerificationEntry]:
        verifications: Dict[str, VerificationEntry] = {}
        page_size = self.settings.pipeline.merge_page_size
        async for page in self.verifications.iter_upload(upload_id, page_size):
            for row in page:
                verifications[row.merge_key] = VerificationEntry(row.sdv_by, row.sdv_date, row.item_name)
        return verifications

    async def _count_queries(self, tenant_id: str) -> Tuple[Counter, Counter]:
        opened: Counter = Counter()
        answered: Counter = Counter()
        async for page in self.queries.iter_tenant(tenant_id, self.settings.pipeline.merge_page_size):
            for query in page:
                if query.query_state == QUERY_STATE_RAISED:
                    opened[query.merge_key] += 1
                elif query.query_state == QUERY_STATE_RESOLVED:
                    answered[query.merge_key] += 1
        return opened, answered

    def build_merged_records(
        self,
        upload: SdvUpload,
        entries: Dict[str, EntryRow],
        verifications: Dict[str, VerificationEntry],
        opened: Counter,
        answered: Counter,
    ) -> List[MergedRecord]:
        records = []
        for position, (merge_key, entry) in enumerate(entries.items()):
            verification = verifications.get(merge_key)
            metrics = calculate_field_metrics(
                entry.edit_date_time,
                verification.sdv_date if verification else None,
                opened_queries=opened.get(merge_key, 0),
                answered_queries=answered.get(merge_key, 0),
                estimates=self.estimates,
            )
            records.append(MergedRecord(
                upload_id=upload.id,
                tenant_id=upload.tenant_id,
                position=position,
                merge_key=merge_key,
                site_name=entry.site_name,
                subject_id=entry.subject_id,
                visit_type=entry.event_name,
                crf_name=entry.form_name,
                crf_field=entry.item_export_label,
                extra_fields={
                    "edit_date_time": entry.edit_date_time,
                    "edit_by": entry.edit_by,
                    "sdv_by": verification.sdv_by if verification else None,
                    "sdv_date": verification.sdv_date if verification else None,
                    "item_name": verification.item_name if verification else None,
                },
                **metrics.to_dict(),
            ))
        return records

    async def _insert(self, records: List[MergedRecord]) -> int:
        batch_size = self.settings.pipeline.merge_batch_size
        inserted = 0
        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            try:
                inserted += await self.merged.bulk_create(batch)
            except AppException as e:
                raise PersistenceFailure(
                    f"Failed to insert merged records {start + 1}-{start + len(batch)}: {e}",
                    details={"batch_start": start, "batch_size": len(batch)},
                ) from e
        return inserted

    @log_execution_time(logger)
    async def merge(self, primary_upload_id: UUID, tenant_id: str) -> MergeResult:
        """
        Rebuild the merged records of ``primary_upload_id``.

        Existing merged records are deleted in the same transaction as the new
        ones are inserted, so a retry after a failure starts from a clean
        slate. On failure the primary upload is marked ``failed`` with the
        error before ``MergeError`` propagates.
        """
        primary = await self.get_primary(primary_upload_id, tenant_id)
        primary.merge_status = MergeStatus.PROCESSING
        primary.merge_error = None
        self.db.add(primary)
        self.db.commit()

        self.log_operation("merge", {"upload_id": str(primary_upload_id), "tenant_id": tenant_id})

        try:
            secondary = await self.uploads.get_linked_secondary(primary_upload_id)
            entries = await self._load_entries(primary_upload_id)
            verifications = await self._load_verifications(secondary.id) if secondary else {}
            opened, answered = await self._count_queries(tenant_id)

            removed = await self.merged.delete_for_upload(primary_upload_id)
            if removed:
                self.logger.info(f"Removed {removed} previous merged records for upload {primary_upload_id}")

            primary = await self.uploads.get_or_404(primary_upload_id)
            records = self.build_merged_records(primary, entries, verifications, opened, answered)
            inserted = await self._insert(records)

            merged_at = utcnow()
            primary.merge_status = MergeStatus.COMPLETED
            primary.merged_at = merged_at
            primary.merged_record_count = inserted
            self.db.add(primary)
            if secondary is not None:
                secondary.merge_status = MergeStatus.COMPLETED
                secondary.merged_at = merged_at
                self.db.add(secondary)
            self.db.commit()

        except (AppException, SQLAlchemyError) as e:
            self.db.rollback()
            await self._mark_failed(primary_upload_id, str(e))
            if isinstance(e, MergeError):
                raise
            raise MergeError(
                f"Merge failed for upload {primary_upload_id}: {e}",
                upload_id=primary_upload_id,
            ) from e

        self.logger.info(
            f"Merged upload {primary_upload_id}: {inserted} records, "
            f"{len(verifications)} verification rows, secondary={secondary.id if secondary else None}"
        )
        return MergeResult(
            upload_id=primary_upload_id,
            merged_records=inserted,
            secondary_upload_id=secondary.id if secondary else None,
        )

    async def _mark_failed(self, upload_id: UUID, error: str) -> None:
        upload = await self.uploads.get(upload_id)
        if upload is None:
            return
        upload.merge_status = MergeStatus.FAILED
        upload.merge_error = error
        self.db.add(upload)
        self.db.commit()
        self.logger.error(f"Merge of upload {upload_id} failed: {error}")
