from typing import Optional
from uuid import UUID

from sqlmodel import SQLModel, Field

from .base import BaseModel


class RawRecordBase(SQLModel):
    """Columns common to both export kinds"""
    upload_id: UUID = Field(index=True)
    chunk_number: int = Field(default=1, index=True)
    row_number: int = Field(default=0)
    merge_key: str = Field(index=True)
    site_name: Optional[str] = Field(default=None)
    subject_id: str
    event_name: Optional[str] = Field(default=None)
    form_name: Optional[str] = Field(default=None)
    item_id: Optional[str] = Field(default=None)


class SiteDataEntryRecord(BaseModel, RawRecordBase, table=True):
    """One row of a Site Data Entry export"""
    __tablename__ = "site_data_entry_records"

    item_export_label: Optional[str] = Field(default=None)
    edit_date_time: Optional[str] = Field(default=None)
    edit_by: Optional[str] = Field(default=None)


class SdvDataRecord(BaseModel, RawRecordBase, table=True):
    """One row of an SDV Data export"""
    __tablename__ = "sdv_data_records"

    item_name: Optional[str] = Field(default=None)
    sdv_by: Optional[str] = Field(default=None)
    sdv_date: Optional[str] = Field(default=None)
