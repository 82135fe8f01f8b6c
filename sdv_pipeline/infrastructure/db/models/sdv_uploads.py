from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlmodel import SQLModel, Field

from .base import BaseModel, TimestampMixin
from ....core.enums import JobType, MergeStatus


class SdvUploadBase(SQLModel):
    tenant_id: str = Field(max_length=64, index=True)
    uploaded_by: Optional[str] = Field(default=None, max_length=64)
    job_type: JobType = Field(index=True)
    file_name: str = Field(max_length=255)
    # Set on SDV data uploads: the site data entry upload they verify
    primary_upload_id: Optional[UUID] = Field(default=None, index=True)


class SdvUpload(BaseModel, SdvUploadBase, TimestampMixin, table=True):
    """A dataset produced by one upload job"""
    __tablename__ = "sdv_uploads"

    row_count: int = Field(default=0, ge=0)
    merge_status: MergeStatus = Field(default=MergeStatus.PENDING, index=True)
    merged_at: Optional[datetime] = Field(default=None)
    merge_error: Optional[str] = Field(default=None)
    merged_record_count: Optional[int] = Field(default=None)


class SdvUploadRead(SdvUploadBase):
    id: UUID
    row_count: int
    merge_status: MergeStatus
    merged_at: Optional[datetime] = None
    merge_error: Optional[str] = None
    merged_record_count: Optional[int] = None
    created_at: datetime
