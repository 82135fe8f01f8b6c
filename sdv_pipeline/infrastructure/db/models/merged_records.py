from datetime import datetime
from typing import Optional, Dict, Any
from uuid import UUID

from sqlalchemy import JSON
from sqlmodel import SQLModel, Field, Column

from .base import BaseModel
from ....utils.date_utils import utcnow


class MergedRecordBase(SQLModel):
    merge_key: str = Field(index=True)
    site_name: Optional[str] = Field(default=None, index=True)
    subject_id: Optional[str] = Field(default=None, index=True)
    visit_type: Optional[str] = Field(default=None, index=True)
    crf_name: Optional[str] = Field(default=None, index=True)
    crf_field: Optional[str] = Field(default=None)

    data_entered: int = Field(default=0, ge=0, le=1)
    data_verified: int = Field(default=0, ge=0, le=1)
    data_expected: int = Field(default=0, ge=0, le=1)
    data_needing_review: int = Field(default=0, ge=0)
    sdv_percent: float = Field(default=0, ge=0, le=100)
    opened_queries: int = Field(default=0, ge=0)
    answered_queries: int = Field(default=0, ge=0)
    estimate_hours: float = Field(default=0)
    estimate_days: float = Field(default=0)

    extra_fields: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))


class MergedRecord(BaseModel, MergedRecordBase, table=True):
    """Per-field verification record produced by the merge"""
    __tablename__ = "sdv_merged_records"

    upload_id: UUID = Field(index=True)
    tenant_id: str = Field(max_length=64, index=True)
    # Order of first appearance in the primary dataset
    position: int = Field(default=0, index=True)
    created_at: datetime = Field(default_factory=utcnow)


class MergedRecordRead(MergedRecordBase):
    id: UUID
    upload_id: UUID
    position: int
