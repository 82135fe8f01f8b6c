from typing import List, Optional
from uuid import UUID

from sqlmodel import Session, select

from .base import BaseRepository
from ..models import SdvUpload, UploadJob
from ....core.enums import JobStatus, JobType


class SdvUploadRepository(BaseRepository[SdvUpload]):
    def __init__(self, session: Session):
        super().__init__(SdvUpload, session)

    async def get_linked_secondary(self, primary_upload_id: UUID) -> Optional[SdvUpload]:
        """
        The most recent fully ingested SDV data upload linked to a site data entry upload.

        Uploads whose job failed, was cancelled or is still running are skipped.
        """
        statement = (
            select(SdvUpload)
            .join(UploadJob, UploadJob.upload_id == SdvUpload.id)
            .where(SdvUpload.primary_upload_id == primary_upload_id)
            .where(SdvUpload.job_type == JobType.SDV_DATA)
            .where(UploadJob.status == JobStatus.COMPLETED)
            .order_by(SdvUpload.created_at.desc())
        )
        return self.session.exec(statement).first()

    async def list_for_tenant(self, tenant_id: str, job_type: Optional[JobType] = None) -> List[SdvUpload]:
        statement = select(SdvUpload).where(SdvUpload.tenant_id == tenant_id)
        if job_type is not None:
            statement = statement.where(SdvUpload.job_type == job_type)
        return list(self.session.exec(statement.order_by(SdvUpload.created_at.desc())).all())
