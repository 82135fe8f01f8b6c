from datetime import datetime

from sqlmodel import Field

from .base import BaseModel
from ....utils.date_utils import utcnow


class QueryRecord(BaseModel, table=True):
    """A query tracker entry, owned by the query tracker and read by the merge"""
    __tablename__ = "query_records"

    tenant_id: str = Field(max_length=64, index=True)
    merge_key: str = Field(index=True)
    query_state: str = Field(max_length=64, index=True)
    created_at: datetime = Field(default_factory=utcnow)
