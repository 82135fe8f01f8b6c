"""
Chunked ingestion coordinator.

``ingest`` validates a whole file, registers the job and dataset, stages the
records as one or more chunk blobs, and enqueues a processing task per chunk
without waiting for it. ``process_chunk`` is that task: it persists one
chunk's rows, and whichever chunk finishes last closes the job.
"""

import asyncio
import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .base import BaseService
from .upload_job_service import UploadJobService
from ..core.config import Settings, get_settings
from ..core.constants import (
    CHUNK_FILE_NAME_PATTERN,
    CHUNK_TIMESTAMP_FORMAT,
    TASK_MERGE_UPLOAD,
    TASK_PROCESS_UPLOAD_CHUNK,
)
from ..core.enums import JobStatus, JobType, MergeStatus
from ..core.exceptions import (
    AppException,
    BadRequestError,
    NotFoundError,
    StorageFailure,
    ValidationException,
)
from ..infrastructure.db.models import SdvDataRecord, SdvUpload, SiteDataEntryRecord
from ..infrastructure.db.repositories import MergedRecordRepository, RawRecordRepository, SdvUploadRepository
from ..infrastructure.messaging import JobEventPublisher
from ..infrastructure.storage import StorageBackend, StorageFileInfo
from ..processors import NormalizedRecord, get_normalizer, schema_for
from ..schemas import ChunkResult, IngestionResult
from ..tasks.dispatch import TaskDispatcher
from ..utils.date_utils import utcnow
from ..utils.number_utils import round_half_up

RAW_RECORD_MODELS = {
    JobType.SITE_DATA_ENTRY: SiteDataEntryRecord,
    JobType.SDV_DATA: SdvDataRecord,
}


def build_chunk_path(tenant_id: str, file_name: str, chunk_number: int, timestamp: Optional[datetime] = None) -> str:
    """``{tenant}/{timestamp}_{sanitized name}_chunk_{NNN}.csv``"""
    stamp = (timestamp or utcnow()).strftime(CHUNK_TIMESTAMP_FORMAT)
    safe_name = CHUNK_FILE_NAME_PATTERN.sub("_", file_name)
    return f"{tenant_id}/{stamp}_{safe_name}_chunk_{chunk_number:03d}.csv"


def plan_chunks(content_size: int, total_records: int, threshold_bytes: int) -> int:
    """Number of chunks for a file: one per started ``threshold_bytes``, never more than rows."""
    if total_records == 0:
        return 0
    wanted = max(1, math.ceil(content_size / threshold_bytes))
    chunk_size = math.ceil(total_records / wanted)
    return math.ceil(total_records / chunk_size)


def split_records(records: Sequence[NormalizedRecord], total_chunks: int) -> List[Sequence[NormalizedRecord]]:
    if total_chunks == 0:
        return []
    chunk_size = math.ceil(len(records) / total_chunks)
    return [records[i:i + chunk_size] for i in range(0, len(records), chunk_size)]


class IngestionService(BaseService):
    def __init__(
        self,
        db_session: Session,
        storage: StorageBackend,
        dispatcher: TaskDispatcher,
        publisher: Optional[JobEventPublisher] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db_session)
        self.settings = settings or get_settings()
        self.storage = storage
        self.dispatcher = dispatcher
        self.jobs = UploadJobService(db_session, publisher=publisher, settings=self.settings)
        self.uploads = SdvUploadRepository(db_session)

    def get_service_name(self) -> str:
        return "IngestionService"

    def _raw_records(self, job_type: JobType) -> RawRecordRepository:
        return RawRecordRepository(RAW_RECORD_MODELS[JobType(job_type)], self.db)

    async def _check_primary(self, tenant_id: str, job_type: JobType, primary_upload_id: Optional[UUID]) -> None:
        if job_type == JobType.SITE_DATA_ENTRY:
            if primary_upload_id is not None:
                raise ValidationException(
                    "Only SDV data uploads can reference a primary upload",
                    field="primary_upload_id",
                    value=str(primary_upload_id),
                )
            return

        if primary_upload_id is None:
            raise ValidationException(
                "SDV data uploads must reference a site data entry upload",
                field="primary_upload_id",
            )
        primary = await self.uploads.get(primary_upload_id)
        if primary is None or primary.tenant_id != tenant_id:
            raise NotFoundError("SdvUpload", primary_upload_id)
        if primary.job_type != JobType.SITE_DATA_ENTRY:
            raise ValidationException(
                "Primary upload must be a site data entry upload",
                field="primary_upload_id",
                value=str(primary_upload_id),
            )

    async def _put_with_retry(self, job_id: UUID, chunk_number: int, path: str, data: bytes) -> StorageFileInfo:
        """Store one chunk blob, retrying with a linearly growing delay; fails the job when exhausted."""
        max_attempts = self.settings.pipeline.chunk_upload_max_attempts
        delay = self.settings.pipeline.chunk_upload_retry_delay
        last_error: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            try:
                return self.storage.put(path, data)
            except StorageFailure as e:
                last_error = e
                self.logger.warning(f"Chunk {chunk_number} upload attempt {attempt}/{max_attempts} failed: {e}")
                if attempt < max_attempts and delay > 0:
                    await asyncio.sleep(delay * attempt)

        message = f"Failed to upload chunk {chunk_number} after {max_attempts} attempts: {last_error}"
        await self.jobs.fail(job_id, message, {"chunk_number": chunk_number, "path": path})
        raise StorageFailure(message, path=path, details={"chunk_number": chunk_number})

    async def ingest(
        self,
        tenant_id: str,
        created_by: Optional[str],
        job_type: Union[JobType, str],
        file_name: str,
        content: Union[str, bytes],
        primary_upload_id: Optional[UUID] = None,
    ) -> IngestionResult:
        job_type = JobType(job_type)
        data = content.encode("utf-8") if isinstance(content, str) else content
        if len(data) > self.settings.storage.max_file_size:
            raise BadRequestError(
                f"File exceeds the {self.settings.storage.max_file_size} byte upload limit",
                details={"size": len(data)},
            )

        # Parse and validate before anything is registered
        normalizer = get_normalizer(job_type)
        parsed = normalizer.normalize(data)
        await self._check_primary(tenant_id, job_type, primary_upload_id)

        records = parsed.records
        total = len(records)
        chunks = split_records(records, plan_chunks(len(data), total, self.settings.pipeline.chunk_threshold_bytes))
        total_chunks = len(chunks)
        chunk_size = len(chunks[0]) if chunks else 0

        self.log_operation("ingest", {
            "tenant_id": tenant_id,
            "job_type": job_type.value,
            "file_name": file_name,
            "records": total,
            "chunks": total_chunks,
        })

        job = await self.jobs.create(
            tenant_id=tenant_id,
            created_by=created_by,
            job_type=job_type,
            file_name=file_name,
            total_records=total,
            metadata={
                "is_chunked": total_chunks > 1,
                "total_chunks": total_chunks,
                "current_chunk": 0,
                "chunk_paths": [],
                "failed_chunks": [],
                "skipped_rows": parsed.skipped_rows,
            },
        )
        job_id = job.id

        if parsed.failed_rows:
            await self.jobs.record_failures(
                job_id, len(parsed.failed_rows), [row.to_dict() for row in parsed.failed_rows]
            )

        upload = SdvUpload(
            tenant_id=tenant_id,
            uploaded_by=created_by,
            job_type=job_type,
            file_name=file_name,
            primary_upload_id=primary_upload_id,
        )
        self.db.add(upload)
        self.db.commit()
        self.db.refresh(upload)
        upload_id = upload.id

        await self.jobs.start(job_id, upload_id)

        if total == 0:
            await self._finalize(job_id, upload_id)
            return await self._result(job_id, upload_id, parsed)

        timestamp = utcnow()
        paths: List[str] = []
        for chunk_number, chunk in enumerate(chunks, start=1):
            if await self.jobs.is_cancelled(job_id):
                self.logger.info(f"Job {job_id} cancelled, not staging chunk {chunk_number}/{total_chunks}")
                break

            path = build_chunk_path(tenant_id, file_name, chunk_number, timestamp)
            await self._put_with_retry(job_id, chunk_number, path, normalizer.serialize(chunk))
            paths.append(path)
            await self.jobs.update_metadata(job_id, current_chunk=chunk_number, chunk_paths=list(paths))

            self.dispatcher.enqueue(TASK_PROCESS_UPLOAD_CHUNK, {
                "job_id": str(job_id),
                "upload_id": str(upload_id),
                "chunk_number": chunk_number,
                "total_chunks": total_chunks,
                "path": path,
                "job_type": job_type.value,
            })

            processed = min(chunk_number * chunk_size, total)
            await self.jobs.update_progress(job_id, processed, round_half_up(processed / total * 100))

        return await self._result(job_id, upload_id, parsed)

    async def _result(self, job_id: UUID, upload_id: UUID, parsed) -> IngestionResult:
        job = await self.jobs.get_job(job_id)
        return IngestionResult(
            job_id=job.id,
            upload_id=upload_id,
            job_type=job.job_type,
            status=job.status,
            total_records=job.total_records,
            total_chunks=job.total_chunks,
            chunk_paths=job.chunk_paths,
            failed_rows=len(parsed.failed_rows),
            skipped_rows=parsed.skipped_rows,
        )

    async def process_chunk(
        self,
        job_id: UUID,
        upload_id: UUID,
        chunk_number: int,
        total_chunks: int,
        path: str,
        job_type: Union[JobType, str],
    ) -> ChunkResult:
        """
        Persist one staged chunk.

        A chunk that cannot be read, parsed or stored is recorded in the job's
        ``failed_chunks`` and its rows in ``failed_records``; the remaining
        chunks carry on. When the last chunk finishes the job is completed,
        or failed if any chunk failed.
        """
        job_type = JobType(job_type)
        job = await self.jobs.get_job(job_id)
        if job.status.is_terminal:
            self.logger.info(f"Skipping chunk {chunk_number} of {job.status.value} job {job_id}")
            return ChunkResult(job_id=job_id, chunk_number=chunk_number, skipped=True)

        repository = self._raw_records(job_type)
        inserted = 0
        failed = 0
        error: Optional[str] = None
        row_count = 0

        try:
            normalizer = get_normalizer(job_type)
            parsed = normalizer.normalize(self.storage.get(path))
            schema = schema_for(job_type)
            model = RAW_RECORD_MODELS[job_type]
            rows = [
                model(
                    upload_id=upload_id,
                    chunk_number=chunk_number,
                    row_number=record.row_number,
                    merge_key=record.merge_key,
                    **record.as_fields(schema),
                )
                for record in parsed.records
            ]
            row_count = len(rows)

            batch_size = self.settings.pipeline.raw_insert_batch_size
            for start in range(0, len(rows), batch_size):
                if await self.jobs.is_cancelled(job_id):
                    self.db.rollback()
                    self.logger.info(f"Job {job_id} cancelled while storing chunk {chunk_number}")
                    return ChunkResult(job_id=job_id, chunk_number=chunk_number, skipped=True)
                inserted += await repository.bulk_create(rows[start:start + batch_size])
            self.db.commit()

            if parsed.failed_rows:
                failed += len(parsed.failed_rows)
                await self.jobs.record_failures(job_id, failed, [
                    {**row.to_dict(), "chunk": chunk_number} for row in parsed.failed_rows
                ])

        except (AppException, SQLAlchemyError) as e:
            self.db.rollback()
            inserted = 0
            failed = row_count
            error = str(e)
            self.logger.error(f"Chunk {chunk_number}/{total_chunks} of job {job_id} failed: {error}")
            await self._record_chunk_failure(job_id, chunk_number, row_count, error)

        if error is None:
            try:
                self.storage.delete(path)
            except StorageFailure as e:
                self.logger.warning(f"Could not remove staged chunk {path}: {e}")

        finished = await self.jobs.mark_chunk_processed(job_id)
        self.logger.info(f"Job {job_id}: chunk {chunk_number} done ({finished}/{total_chunks}), {inserted} rows stored")

        if finished >= total_chunks:
            await self._finalize(job_id, upload_id)

        return ChunkResult(
            job_id=job_id,
            chunk_number=chunk_number,
            inserted=inserted,
            failed=failed,
            finished_chunks=finished,
            error=error,
        )

    async def _record_chunk_failure(self, job_id: UUID, chunk_number: int, rows: int, error: str) -> None:
        job = await self.jobs.get_job(job_id)
        failed_chunks = list((job.job_metadata or {}).get("failed_chunks", []))
        failed_chunks.append({"chunk": chunk_number, "error": error})
        await self.jobs.update_metadata(job_id, failed_chunks=failed_chunks)
        await self.jobs.record_failures(job_id, rows, [{"chunk": chunk_number, "error": error}])

    async def _finalize(self, job_id: UUID, upload_id: UUID) -> None:
        job = await self.jobs.get_job(job_id)
        if job.status.is_terminal:
            return

        upload = await self.uploads.get_or_404(upload_id)
        upload.row_count = await self._raw_records(upload.job_type).count(upload_id=upload_id)
        failed_chunks = (job.job_metadata or {}).get("failed_chunks", [])
        message = f"{len(failed_chunks)} of {job.total_chunks} chunks failed to process"
        if failed_chunks:
            # Never merged while incomplete
            upload.merge_status = MergeStatus.FAILED
            upload.merge_error = message
        elif upload.job_type == JobType.SDV_DATA:
            # Nothing to merge on its own; the primary's merge picks it up
            upload.merge_status = MergeStatus.COMPLETED
            upload.merged_at = utcnow()
        self.db.add(upload)
        self.db.commit()
        self.db.refresh(upload)

        if failed_chunks:
            await self.jobs.fail(job_id, message, {"failed_chunks": failed_chunks})
            return

        await self.jobs.complete(job_id, upload_id)

        if self.settings.pipeline.auto_merge:
            await self._schedule_merge(upload)

    async def _schedule_merge(self, upload: SdvUpload) -> None:
        if upload.job_type == JobType.SITE_DATA_ENTRY:
            primary_id = upload.id
        else:
            primary_id = upload.primary_upload_id
            primary_job = await self.jobs.repository.get_by_upload(primary_id)
            if primary_job is None or primary_job.status != JobStatus.COMPLETED:
                # The primary's own completion merges once its rows are in
                self.logger.info(f"Primary upload {primary_id} still ingesting, merge deferred")
                return

        self.dispatcher.enqueue(TASK_MERGE_UPLOAD, {
            "primary_upload_id": str(primary_id),
            "tenant_id": upload.tenant_id,
        })

    async def delete_upload(self, upload_id: UUID, tenant_id: str) -> Dict[str, int]:
        """Remove a dataset with its staged rows and any merged records."""
        upload = await self.uploads.get(upload_id)
        if upload is None or upload.tenant_id != tenant_id:
            raise NotFoundError("SdvUpload", upload_id)

        deleted = {
            "raw_records": await self._raw_records(upload.job_type).delete_for_upload(upload_id),
            "merged_records": await MergedRecordRepository(self.db).delete_for_upload(upload_id),
        }
        await self.uploads.delete(upload_id)
        self.db.commit()
        self.log_operation("delete_upload", {"upload_id": str(upload_id), **deleted})
        return deleted
