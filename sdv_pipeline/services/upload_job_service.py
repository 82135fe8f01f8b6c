"""
Upload job tracker.

The only writer of UploadJob rows. Every write is committed before the
matching job event is published, so observers never see state that could
still roll back.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .base import BaseService
from ..core.config import Settings, get_settings
from ..core.enums import JobStatus, JobType
from ..core.exceptions import DatabaseError, InvalidJobTransition, NotFoundError
from ..infrastructure.db.models import UploadJob
from ..infrastructure.db.repositories import UploadJobRepository
from ..infrastructure.messaging import JobEventPublisher, JobEventType, get_job_event_publisher
from ..utils.date_utils import seconds_ago, utcnow

ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
}

STATUS_EVENTS = {
    JobStatus.PROCESSING: JobEventType.STARTED,
    JobStatus.COMPLETED: JobEventType.COMPLETED,
    JobStatus.FAILED: JobEventType.FAILED,
    JobStatus.CANCELLED: JobEventType.CANCELLED,
}

# error_details keeps at most this many failed-row entries
MAX_FAILED_ROW_DETAILS = 100


class UploadJobService(BaseService):
    def __init__(
        self,
        db_session: Session,
        publisher: Optional[JobEventPublisher] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db_session)
        self.settings = settings or get_settings()
        self.publisher = publisher or get_job_event_publisher()
        self.repository = UploadJobRepository(db_session)

    def get_service_name(self) -> str:
        return "UploadJobService"

    async def _load(self, job_id: UUID) -> UploadJob:
        """Fetch the job and re-read its row so status checks see other writers."""
        job = await self.repository.get_or_404(job_id)
        self.db.refresh(job)
        return job

    def _check_transition(self, job: UploadJob, target: JobStatus) -> None:
        if target not in ALLOWED_TRANSITIONS.get(job.status, set()):
            raise InvalidJobTransition(job.id, job.status.value, target.value)

    async def _save(self, job: UploadJob, event_type: JobEventType) -> UploadJob:
        try:
            self.db.add(job)
            self.db.commit()
            self.db.refresh(job)
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error(f"Failed to save upload job {job.id}: {e}")
            raise DatabaseError(f"Failed to save upload job: {e}")

        await self.publisher.publish(event_type, job)
        return job

    async def create(
        self,
        tenant_id: str,
        created_by: Optional[str],
        job_type: JobType,
        file_name: str,
        total_records: int = 0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UploadJob:
        job = UploadJob(
            tenant_id=tenant_id,
            created_by=created_by,
            job_type=JobType(job_type),
            file_name=file_name,
            total_records=total_records,
            status=JobStatus.PENDING,
            progress=0,
            job_metadata=dict(metadata or {}),
        )
        job = await self._save(job, JobEventType.CREATED)
        self.log_operation("create", {"job_id": str(job.id), "job_type": job.job_type.value, "total_records": total_records})
        return job

    async def start(self, job_id: UUID, upload_id: Optional[UUID] = None) -> UploadJob:
        job = await self._load(job_id)
        self._check_transition(job, JobStatus.PROCESSING)

        job.status = JobStatus.PROCESSING
        job.started_at = utcnow()
        if upload_id is not None:
            job.upload_id = upload_id
        return await self._save(job, JobEventType.STARTED)

    async def update_progress(
        self,
        job_id: UUID,
        processed_records: int,
        progress: float,
        status: Optional[JobStatus] = None,
        error_message: Optional[str] = None,
    ) -> UploadJob:
        """
        Record progress. Writes to a job that already reached a terminal state
        are dropped with a warning.

        Progress is clamped to [0, 100] and never moves backwards while the job
        is processing; ``processed_records`` is last-write-wins.
        """
        job = await self._load(job_id)
        if job.status.is_terminal:
            self.logger.warning(
                f"Ignoring progress update for {job.status.value} job {job_id} "
                f"(processed={processed_records}, progress={progress})"
            )
            return job

        clamped = max(0, min(100, int(progress)))
        event_type = JobEventType.PROGRESS

        if status is not None and JobStatus(status) != job.status:
            status = JobStatus(status)
            self._check_transition(job, status)
            job.status = status
            event_type = STATUS_EVENTS[status]
            if status == JobStatus.PROCESSING and job.started_at is None:
                job.started_at = utcnow()
            if status.is_terminal:
                job.completed_at = utcnow()

        if job.status == JobStatus.PROCESSING:
            job.progress = max(job.progress, clamped)
        else:
            job.progress = clamped
        job.processed_records = max(0, processed_records)
        if error_message is not None:
            job.error_message = error_message

        return await self._save(job, event_type)

    async def update_metadata(self, job_id: UUID, **changes: Any) -> UploadJob:
        """Merge ``changes`` into the job's chunk bookkeeping."""
        job = await self._load(job_id)
        # JSON columns only notice reassignment
        job.job_metadata = {**(job.job_metadata or {}), **changes}
        return await self._save(job, JobEventType.PROGRESS)

    async def record_failures(
        self,
        job_id: UUID,
        count: int,
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> UploadJob:
        """Add ``count`` to failed_records and keep a bounded sample of what failed."""
        job = await self._load(job_id)
        if job.status.is_terminal:
            self.logger.warning(f"Ignoring {count} failed records reported for {job.status.value} job {job_id}")
            return job

        job.failed_records += count
        if details:
            existing = dict(job.error_details or {})
            failed_rows = list(existing.get("failed_rows", [])) + list(details)
            existing["failed_rows"] = failed_rows[:MAX_FAILED_ROW_DETAILS]
            job.error_details = existing
        return await self._save(job, JobEventType.PROGRESS)

    async def mark_chunk_processed(self, job_id: UUID) -> int:
        """Count one more finished chunk; returns how many have finished."""
        try:
            finished = await self.repository.increment_chunks_processed(job_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(f"Failed to count processed chunk: {e}")
        return finished

    async def complete(self, job_id: UUID, upload_id: Optional[UUID] = None) -> UploadJob:
        job = await self._load(job_id)
        self._check_transition(job, JobStatus.COMPLETED)

        job.status = JobStatus.COMPLETED
        job.progress = 100
        job.completed_at = utcnow()
        if upload_id is not None:
            job.upload_id = upload_id
        job = await self._save(job, JobEventType.COMPLETED)
        self.log_operation("complete", {"job_id": str(job_id), "processed_records": job.processed_records})
        return job

    async def fail(
        self,
        job_id: UUID,
        error_message: str,
        error_details: Optional[Dict[str, Any]] = None,
    ) -> UploadJob:
        job = await self._load(job_id)
        self._check_transition(job, JobStatus.FAILED)

        job.status = JobStatus.FAILED
        job.error_message = error_message
        job.completed_at = utcnow()
        if error_details:
            job.error_details = {**(job.error_details or {}), **error_details}
        self.logger.error(f"Upload job {job_id} failed: {error_message}")
        return await self._save(job, JobEventType.FAILED)

    async def cancel(self, job_id: UUID) -> UploadJob:
        job = await self._load(job_id)
        self._check_transition(job, JobStatus.CANCELLED)

        job.status = JobStatus.CANCELLED
        job.completed_at = utcnow()
        self.log_operation("cancel", {"job_id": str(job_id)})
        return await self._save(job, JobEventType.CANCELLED)

    async def is_cancelled(self, job_id: UUID) -> bool:
        job = await self._load(job_id)
        return job.status == JobStatus.CANCELLED

    async def get_job(self, job_id: UUID, tenant_id: Optional[str] = None) -> UploadJob:
        job = await self.repository.get_for_tenant(job_id, tenant_id)
        if job is None:
            raise NotFoundError("UploadJob", job_id)
        self.db.refresh(job)
        return job

    async def get_active_jobs(self, tenant_id: str) -> List[UploadJob]:
        return await self.repository.get_active(tenant_id)

    async def get_job_history(self, tenant_id: str, limit: Optional[int] = None) -> List[UploadJob]:
        return await self.repository.get_history(tenant_id, limit or self.settings.pipeline.job_history_limit)

    async def fail_stale_jobs(self, older_than_seconds: int) -> List[UUID]:
        """Fail processing jobs that have not been written for ``older_than_seconds``."""
        stale = await self.repository.get_stale(seconds_ago(older_than_seconds))
        failed = []
        for job in stale:
            await self.fail(
                job.id,
                f"Job stalled: no progress for {older_than_seconds} seconds",
                {"stale_since": (job.updated_at or job.started_at or job.created_at).isoformat()},
            )
            failed.append(job.id)

        if failed:
            self.log_operation("fail_stale_jobs", {"failed": len(failed), "older_than_seconds": older_than_seconds})
        return failed
