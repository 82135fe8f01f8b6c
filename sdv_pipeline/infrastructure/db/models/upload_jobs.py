from datetime import datetime
from typing import Optional, Dict, Any, List
from uuid import UUID

from sqlalchemy import JSON
from sqlmodel import SQLModel, Field, Column

from .base import BaseModel, TimestampMixin
from ....core.enums import JobStatus, JobType


class UploadJobBase(SQLModel):
    """Fields shared by the upload job table and its schemas"""
    tenant_id: str = Field(max_length=64, index=True)
    created_by: Optional[str] = Field(default=None, max_length=64)
    job_type: JobType = Field(index=True)
    file_name: str = Field(max_length=255)
    total_records: int = Field(default=0, ge=0)


class UploadJob(BaseModel, UploadJobBase, TimestampMixin, table=True):
    """One logical upload, spanning one or more stored chunks"""
    __tablename__ = "upload_jobs"

    status: JobStatus = Field(default=JobStatus.PENDING, index=True)
    progress: int = Field(default=0, ge=0, le=100)
    processed_records: int = Field(default=0, ge=0)
    failed_records: int = Field(default=0, ge=0)
    chunks_processed: int = Field(default=0, ge=0)
    error_message: Optional[str] = Field(default=None)
    error_details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    # "metadata" is reserved on declarative classes
    job_metadata: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    upload_id: Optional[UUID] = Field(default=None, index=True)

    @property
    def total_chunks(self) -> int:
        return int((self.job_metadata or {}).get("total_chunks", 0))

    @property
    def chunk_paths(self) -> List[str]:
        return list((self.job_metadata or {}).get("chunk_paths", []))


class UploadJobCreate(UploadJobBase):
    job_metadata: Dict[str, Any] = Field(default_factory=dict)


class UploadJobRead(UploadJobBase):
    id: UUID
    status: JobStatus
    progress: int
    processed_records: int
    failed_records: int
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    job_metadata: Dict[str, Any] = Field(default_factory=dict)
    upload_id: Optional[UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
