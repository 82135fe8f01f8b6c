from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..core.enums import JobStatus, JobType


class IngestionResult(BaseModel):
    """Outcome of handing a file to the ingestion coordinator."""
    job_id: UUID
    upload_id: UUID
    job_type: JobType
    status: JobStatus
    total_records: int = 0
    total_chunks: int = 0
    chunk_paths: List[str] = []
    failed_rows: int = 0
    skipped_rows: int = 0


class ChunkResult(BaseModel):
    """Outcome of one chunk processing task."""
    job_id: UUID
    chunk_number: int
    inserted: int = 0
    failed: int = 0
    skipped: bool = False
    finished_chunks: Optional[int] = None
    error: Optional[str] = None


class MergeRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1, max_length=64)


class MergeResult(BaseModel):
    upload_id: UUID
    merged_records: int
    secondary_upload_id: Optional[UUID] = None


class MergeAccepted(BaseModel):
    upload_id: UUID
    queued: bool = True


class UploadDeleted(BaseModel):
    upload_id: UUID
    deleted_records: Dict[str, int] = Field(default_factory=dict)
