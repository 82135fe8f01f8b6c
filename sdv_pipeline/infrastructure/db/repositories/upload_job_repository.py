from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlmodel import Session, select, update
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseRepository, logger
from ..models import UploadJob
from ....core.enums import JobStatus
from ....core.exceptions import DatabaseError

ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


class UploadJobRepository(BaseRepository[UploadJob]):
    def __init__(self, session: Session):
        super().__init__(UploadJob, session)

    async def get_for_tenant(self, job_id: UUID, tenant_id: Optional[str] = None) -> Optional[UploadJob]:
        job = await self.get(job_id)
        if job is not None and tenant_id is not None and job.tenant_id != tenant_id:
            return None
        return job

    async def get_by_upload(self, upload_id: UUID) -> Optional[UploadJob]:
        """The job that produced a dataset"""
        statement = (
            select(UploadJob)
            .where(UploadJob.upload_id == upload_id)
            .order_by(UploadJob.created_at.desc())
        )
        return self.session.exec(statement).first()

    async def get_active(self, tenant_id: str) -> List[UploadJob]:
        statement = (
            select(UploadJob)
            .where(UploadJob.tenant_id == tenant_id)
            .where(UploadJob.status.in_(ACTIVE_STATUSES))
            .order_by(UploadJob.created_at.desc())
        )
        return list(self.session.exec(statement).all())

    async def get_history(self, tenant_id: str, limit: int) -> List[UploadJob]:
        statement = (
            select(UploadJob)
            .where(UploadJob.tenant_id == tenant_id)
            .order_by(UploadJob.created_at.desc())
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    async def get_stale(self, updated_before: datetime) -> List[UploadJob]:
        statement = (
            select(UploadJob)
            .where(UploadJob.status == JobStatus.PROCESSING)
            .where(UploadJob.updated_at < updated_before)
        )
        return list(self.session.exec(statement).all())

    async def increment_chunks_processed(self, job_id: UUID) -> int:
        """Atomically bump the processed chunk counter and return the new value."""
        try:
            self.session.exec(
                update(UploadJob)
                .where(UploadJob.id == job_id)
                .values(chunks_processed=UploadJob.chunks_processed + 1)
            )
            self.session.flush()
            return self.session.exec(
                select(UploadJob.chunks_processed).where(UploadJob.id == job_id)
            ).one()

        except SQLAlchemyError as e:
            logger.error(f"Failed to count processed chunk for job {job_id}: {e}")
            raise DatabaseError(f"Failed to update chunk counter: {str(e)}")
